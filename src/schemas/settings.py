"""Import configuration shared by every stage of a migration run."""

import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class ImportSettings(BaseModel):
    """Process-wide, read-only settings of a migration run.

    Attributes:
        output: Root output directory
        locale: Locale written on every localized node
        user: Username recorded as uploader; when unset, the first author's
            username is used
        email_template: Template for synthesized author emails, with one
            ``{author_id}`` placeholder
        context: Path of the OPS server receiving the import
        include_public_id: Write the OSF id as the public identifier
        save_supplementary_files: Import files of the supplementary node as
            galleys instead of linking to the node
        embed_submissions: Embed file content as base64 instead of writing
            it next to the XML
        tag_galley_doi: Attach the preprint DOI to the first galley
        redirect_base_url: Base URL for the permanent redirect statements
        max_attempts: Attempts per preprint before giving up
        sleep_seconds: Pause after each processed preprint
    """

    output: Path
    locale: str = "en_US"
    user: str | None = None
    email_template: str = "{author_id}@osf.invalid"
    context: str = "osf"
    include_public_id: bool = True
    save_supplementary_files: bool = False
    embed_submissions: bool = False
    tag_galley_doi: bool = False
    redirect_base_url: str | None = None
    max_attempts: int = Field(default=3, ge=1)
    sleep_seconds: float = Field(default=3, ge=0)

    model_config = {"frozen": True}

    @field_validator("email_template")
    @classmethod
    def _check_email_template(cls, value: str) -> str:
        try:
            formatted = value.format(author_id="\0")
        except (AttributeError, IndexError, KeyError, ValueError) as e:
            raise ValueError(
                f"email_template may only use the {{author_id}} placeholder: {e!r}"
            ) from e
        if "\0" not in formatted:
            raise ValueError("email_template must contain an {author_id} placeholder")
        return value

    @property
    def xml_dir(self) -> Path:
        return self.output / "xml"

    @property
    def submissions_dir(self) -> Path:
        return self.output / "submissions"

    @property
    def sql_dir(self) -> Path:
        return self.output / "sql"

    def format_email(self, author_id: str) -> str:
        return self.email_template.format(author_id=author_id)

    def xml_path(self, preprint_id: str) -> Path:
        """Import document of a preprint; its presence marks the preprint done."""
        return self.xml_dir / f"{safe_name(preprint_id)}.xml"

    def submission_dir_for(self, preprint_id: str) -> Path:
        return self.submissions_dir / safe_name(preprint_id)

    def sql_dir_for(self, preprint_id: str) -> Path:
        return self.sql_dir / safe_name(preprint_id)


def safe_name(preprint_id: str) -> str:
    """File-system safe form of an OSF id (non-word characters become ``-``)."""
    return re.sub(r"\W", "-", preprint_id)
