from __future__ import annotations

from colorama import Fore, Style, init


class Console:
    """Tagged, optionally coloured terminal output for the lingdig CLI.

    ``quiet`` silences everything except failures, which is what ``--json``
    relies on to keep stdout parseable.
    """

    def __init__(self, use_color: bool = True, quiet: bool = False) -> None:
        init(autoreset=True)
        self.use_color = use_color
        self.quiet = quiet

    def info(self, msg: str) -> None:
        if not self.quiet:
            print(self._fmt("[INFO] ", Fore.BLUE) + msg)

    def ok(self, msg: str) -> None:
        if not self.quiet:
            print(self._fmt("[OK] ", Fore.GREEN) + msg)

    def warn(self, msg: str) -> None:
        if not self.quiet:
            print(self._fmt("[WARN] ", Fore.YELLOW) + msg)

    def fail(self, msg: str) -> None:
        # Failures are shown even in quiet mode.
        print(self._fmt("[FAIL] ", Fore.RED) + msg)

    def section(self, title: str) -> None:
        if not self.quiet:
            print(f"\n=== {title} ===")

    def raw(self, text: str) -> None:
        if not self.quiet:
            print(text)

    def _fmt(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{Style.RESET_ALL}"
