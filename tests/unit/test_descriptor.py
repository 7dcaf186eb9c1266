"""Unit tests for the backend descriptor reader and writer."""

import pytest

from remote_backend.engine.descriptor import (
    load_descriptor,
    parse_descriptor,
    read_identifiers,
    remove_descriptor,
    render_descriptor,
    write_descriptor,
)
from remote_backend.errors import DescriptorError
from remote_backend.models import BackendDescriptor

EXPECTED_BLOCK = """terraform {
  backend "s3" {
    bucket               = "terraform-state-ab12c"
    key                  = "terraform.tfstate"
    region               = "eu-west-1"
    dynamodb_table       = "terraform-locks-ab12c"
    encrypt              = true
    workspace_key_prefix = "env"
  }
}
"""


@pytest.fixture
def descriptor():
    return BackendDescriptor(
        bucket="terraform-state-ab12c",
        dynamodb_table="terraform-locks-ab12c",
        region="eu-west-1",
    )


class TestRenderDescriptor:
    """Test descriptor serialization."""

    def test_renders_fixed_block(self, descriptor):
        """Test the rendered block matches the backend layout exactly."""
        assert render_descriptor(descriptor) == EXPECTED_BLOCK

    def test_round_trip_identifiers(self, descriptor):
        """Test the reader recovers identifiers from writer output."""
        text = render_descriptor(descriptor)

        assert read_identifiers(text) == ("terraform-state-ab12c", "terraform-locks-ab12c")
        assert parse_descriptor(text) == descriptor


class TestParseDescriptor:
    """Test descriptor parsing."""

    def test_parses_typed_fields(self):
        """Test booleans and strings come back typed."""
        parsed = parse_descriptor(EXPECTED_BLOCK)

        assert parsed.encrypt is True
        assert parsed.key == "terraform.tfstate"
        assert parsed.workspace_key_prefix == "env"
        assert parsed.region == "eu-west-1"

    def test_partial_configuration(self):
        """Test a bare list of assignments is accepted."""
        text = 'bucket = "my-state"\ndynamodb_table = "my-locks"\n'

        parsed = parse_descriptor(text)

        assert parsed.bucket == "my-state"
        assert parsed.dynamodb_table == "my-locks"
        assert parsed.region is None

    def test_ignores_comments(self):
        """Test commented-out assignments are not picked up."""
        text = """
        terraform {
          backend "s3" {
            # bucket = "old-bucket"
            bucket         = "new-bucket" # current
            // dynamodb_table = "old-locks"
            dynamodb_table = "new-locks"
          }
        }
        """

        assert read_identifiers(text) == ("new-bucket", "new-locks")

    def test_missing_table(self):
        """Test a descriptor without the lock table is rejected."""
        with pytest.raises(DescriptorError) as exc_info:
            parse_descriptor('bucket = "only-bucket"\n')

        assert "dynamodb_table" in str(exc_info.value)

    def test_missing_both(self):
        """Test an unrelated file is rejected."""
        with pytest.raises(DescriptorError) as exc_info:
            parse_descriptor('provider "aws" {\n  region = "eu-west-1"\n}\n')

        assert "bucket and dynamodb_table" in str(exc_info.value)

    def test_empty_identifier(self):
        """Test an empty quoted identifier counts as missing."""
        with pytest.raises(DescriptorError):
            parse_descriptor('bucket = ""\ndynamodb_table = "locks"\n')


class TestDescriptorFile:
    """Test descriptor file persistence."""

    def test_write_then_load(self, tmp_path, descriptor):
        """Test writing and loading the descriptor file."""
        path = tmp_path / "backend.tf"

        write_descriptor(path, descriptor)

        assert path.read_text() == EXPECTED_BLOCK
        assert load_descriptor(path) == descriptor

    def test_write_replaces_existing(self, tmp_path, descriptor):
        """Test an existing descriptor is overwritten without leftovers."""
        path = tmp_path / "backend.tf"
        path.write_text("garbage that is not a descriptor")

        write_descriptor(path, descriptor)

        assert path.read_text() == EXPECTED_BLOCK
        assert [p.name for p in tmp_path.iterdir()] == ["backend.tf"]

    def test_load_missing_file(self, tmp_path):
        """Test loading a missing descriptor fails descriptively."""
        with pytest.raises(DescriptorError) as exc_info:
            load_descriptor(tmp_path / "backend.tf")

        assert "backend.tf file not found" in str(exc_info.value)

    def test_load_unparsable_file(self, tmp_path):
        """Test loading a descriptor without identifiers fails."""
        path = tmp_path / "backend.tf"
        path.write_text('terraform {\n  backend "s3" {\n    key = "terraform.tfstate"\n  }\n}\n')

        with pytest.raises(DescriptorError) as exc_info:
            load_descriptor(path)

        assert "in backend.tf" in str(exc_info.value)

    def test_remove(self, tmp_path, descriptor):
        """Test removing the descriptor, then removing it again."""
        path = write_descriptor(tmp_path / "backend.tf", descriptor)

        assert remove_descriptor(path) is True
        assert not path.exists()
        assert remove_descriptor(path) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
