import re
import sys
from typing import Any, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text

_console = Console(highlight=False, soft_wrap=True)
_err_console = Console(stderr=True, highlight=False, soft_wrap=True)

_YES = re.compile(r"^[Yy]$")


def header(text: str, subtext: str = "") -> None:
    header_text = f"[bold #4CCACC]=> {text}[/bold #4CCACC]"
    _console.print(header_text, subtext)


def print(*objects: Any, **kwargs: Any) -> None:
    _console.print(*objects, **kwargs)


def print_hcl(text: str) -> None:
    _console.print(Syntax(text.rstrip("\n"), "hcl", theme="ansi_dark", background_color="default"))


def prompt(*, text: str, default: Optional[Any] = None) -> Any:
    prompt_text = f"{text} [{default}]: " if default is not None else f"{text}: "
    user_input = _console.input(prompt_text).strip()
    return user_input if user_input else default


def confirm(text: str) -> bool:
    """Ask a y/N question. Only a single 'y' or 'Y' counts as yes."""
    answer = prompt(text=f"{text} (y/N)", default="")
    return bool(_YES.match(answer))


def detail(text: str, dim: bool = True, **kwargs) -> None:
    style = "dim" if dim else ""
    _console.print(Text(text, style=style), **kwargs)


def success(text: str) -> None:
    _console.print(Text(text, style="bold green"))


def warn(text: str) -> None:
    _console.print(Text(text, style="bold yellow"))


def error(text: str, exit: bool = True) -> None:
    _err_console.print(Text(f"ERROR: {text}", style="bold red"))

    if exit:
        sys.exit(1)
