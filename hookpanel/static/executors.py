# hookpanel/static/executors.py
from enum import Enum
from typing import Dict, List, Optional

from hookpanel.utils.errors import UnsupportedExecutor


class Executor(str, Enum):
    """
    Closed set of runtimes a script can be executed with.

    Each member carries the interpreter binary, the arguments placed before
    the script path, and the extension the scratch file must have.
    """

    BASH = ("bash", "bash", (), ".sh")
    SH = ("sh", "sh", (), ".sh")
    PYTHON = ("python", "python3", ("-u",), ".py")
    PYTHON3 = ("python3", "python3", ("-u",), ".py")
    NODE = ("node", "node", (), ".js")
    PHP = ("php", "php", (), ".php")
    RUBY = ("ruby", "ruby", (), ".rb")
    PERL = ("perl", "perl", (), ".pl")
    GO = ("go", "go", ("run",), ".go")
    JAVA = ("java", "java", (), ".java")
    POWERSHELL = ("powershell", "pwsh", ("-NoProfile", "-NonInteractive", "-File"), ".ps1")
    CMD = ("cmd", "cmd.exe", ("/c",), ".bat")

    def __new__(cls, tag, binary, flags, extension):
        member = str.__new__(cls, tag)
        member._value_ = tag
        member.binary = binary
        member.flags = flags
        member.extension = extension
        return member

    def command(self, script_path: str, overrides: Optional[Dict[str, str]] = None) -> List[str]:
        """Build the argv that runs script_path under this executor"""
        binary = (overrides or {}).get(self.value, self.binary)
        return [binary, *self.flags, script_path]

    @classmethod
    def parse(cls, tag: str) -> "Executor":
        try:
            return cls(tag)
        except ValueError:
            raise UnsupportedExecutor(tag) from None

    @classmethod
    def tags(cls) -> List[str]:
        return [member.value for member in cls]
