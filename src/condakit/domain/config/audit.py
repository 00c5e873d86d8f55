"""Environment audit configuration model."""

from typing import Optional

from pydantic import BaseModel


class AuditConfig(BaseModel):
    """Configuration for the environment audit report.

    Attributes:
        python: Interpreter to inspect (None = detect "python" on PATH)
        output_dir: Output directory (None = env_audit_YYYYmmdd_HHMMSS)
        preview_lines: Lines of each artifact echoed to the console
    """

    python: Optional[str] = None
    output_dir: Optional[str] = None
    preview_lines: int = 12
