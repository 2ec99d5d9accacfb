"""Statement generator for the post-import side effects of a preprint.

The native import cannot create users, stage assignments, download metrics
or redirects, so these are emitted as SQL fragments to run after the import.
They find the imported submission again through the OSF id stored as the
publication's public identifier (``pub-id::publisher-id``), the only key
that survives the import.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import bcrypt
from jinja2 import Environment, FileSystemLoader, StrictUndefined
from lxml import etree

from schemas.native import DefaultValues, MetricsFileType
from schemas.osf import Preprint
from schemas.settings import ImportSettings

from ..builders.document_builder import PKP_NS
from ..graph.reconciler import VersionReconciler
from .filters import FILTERS

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
METRICS_LOAD_ID = "osf-import.txt"

FILE_TYPE_BY_LABEL = {
    "doc": MetricsFileType.DOC,
    "docx": MetricsFileType.DOC,
    "pdf": MetricsFileType.PDF,
}


def _tag(local: str) -> str:
    return f"{{{PKP_NS}}}{local}"


@dataclass
class StatementBundle:
    """Side-effect statements of one preprint.

    Attributes:
        users: One provisioning fragment per author
        link_users: Stage assignments of the imported authors
        metrics: One download-count insert per local galley
        redirect: Permanent redirect line, when a redirect base URL is set
        relation: Published-version relation, when the preprint has a DOI
        import_command: Shell line replaying the import of this preprint
    """

    users: list[str] = field(default_factory=list)
    link_users: str = ""
    metrics: list[str] = field(default_factory=list)
    redirect: str | None = None
    relation: str | None = None
    import_command: str | None = None

    def files(self) -> dict[str, str]:
        """Non-empty outputs keyed by file name."""
        outputs = {
            "users.sql": "\n".join(self.users),
            "link_users.sql": self.link_users,
            "metrics.sql": "\n".join(self.metrics),
            "redirect.sql": self.redirect or "",
            "relation.sql": self.relation or "",
            "import.sh": self.import_command or "",
        }
        return {name: content for name, content in outputs.items() if content}


class StatementGenerator:
    """Render the side-effect statements of an imported preprint.

    Example:
        generator = StatementGenerator(settings)
        bundle = generator.generate(document, preprint, reconciler)
    """

    def __init__(
        self,
        settings: ImportSettings,
        today: date | None = None,
        templates_dir: Path | None = None,
    ):
        """Initialize the generator.

        Args:
            settings: Import settings (locale, context, redirect base URL)
            today: Date recorded on download metrics (default: today)
            templates_dir: Directory containing the statement templates
        """
        self.settings = settings
        self.today = today
        self.templates_dir = templates_dir or TEMPLATES_DIR

        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        for name, func in FILTERS.items():
            self._env.filters[name] = func

    def generate(
        self,
        document: etree._Element,
        preprint: Preprint,
        reconciler: VersionReconciler,
    ) -> StatementBundle:
        """Render every statement of a preprint.

        Args:
            document: Finished import document of the preprint
            preprint: The preprint the document was built from
            reconciler: Reconciler used to build the document

        Returns:
            StatementBundle with all fragments
        """
        authors = self._authors(document)
        bundle = StatementBundle(
            users=[self._render_user(author) for author in authors],
            link_users=self._render(
                "link_users.sql.j2",
                preprint_id=preprint.id,
                author_role_id=DefaultValues.AUTHOR_ROLE_ID,
            ),
            metrics=self._render_metrics(document, preprint, reconciler),
            redirect=self._render_redirect(preprint),
            relation=self._render_relation(preprint),
            import_command=self._render_import_command(preprint, authors),
        )
        logger.debug(
            f"Generated statements for preprint {preprint.id}: "
            f"{len(bundle.users)} user(s), {len(bundle.metrics)} metric(s)"
        )
        return bundle

    def _render(self, template_name: str, **context) -> str:
        return self._env.get_template(template_name).render(**context)

    def _authors(self, document: etree._Element) -> list[dict[str, str]]:
        """Names and emails of the authors of the first publication.

        Later publications repeat the same authors under other ids.
        """
        publication = document.find(_tag("publication"))
        if publication is None:
            return []

        authors = []
        for node in publication.iterfind(f"{_tag('authors')}/{_tag('author')}"):
            email = node.findtext(_tag("email")) or ""
            authors.append(
                {
                    "given_name": node.findtext(_tag("givenname")) or "",
                    "family_name": node.findtext(_tag("familyname")) or "",
                    "email": email,
                    "username": email.split("@", 1)[0],
                }
            )
        return authors

    def _render_user(self, author: dict[str, str]) -> str:
        secret = f"{author['username']}{secrets.token_hex(16)}"
        password = bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
        return self._render(
            "users.sql.j2",
            password=password,
            locale=self.settings.locale,
            context=self.settings.context,
            author_role_id=DefaultValues.AUTHOR_ROLE_ID,
            **author,
        )

    def _render_metrics(
        self,
        document: etree._Element,
        preprint: Preprint,
        reconciler: VersionReconciler,
    ) -> list[str]:
        """One insert per local galley of the final publication.

        Download counts live on the latest revision of each file, which is
        what the final publication references.
        """
        publications = document.findall(_tag("publication"))
        if not publications:
            return []

        today = self.today or date.today()
        statements = []
        for galley in publications[-1].iterfind(_tag("preprint_galley")):
            ref = galley.find(_tag("submission_file_ref"))
            if ref is None:
                continue
            entry = reconciler.revision_for(int(ref.get("id")))
            galley_id = int(galley.findtext(f"{_tag('id')}[@type='internal']"))
            label = (galley.findtext(_tag("name")) or "").lower()
            statements.append(
                self._render(
                    "metrics.sql.j2",
                    load_id=METRICS_LOAD_ID,
                    preprint_id=preprint.id,
                    assoc_type=DefaultValues.SUBMISSION_FILE_ASSOC_TYPE,
                    day=today.strftime("%Y%m%d"),
                    month=today.strftime("%Y%m"),
                    file_type=int(FILE_TYPE_BY_LABEL.get(label, MetricsFileType.OTHER)),
                    downloads=entry.revision.downloads,
                    offset=galley_id - 1,
                )
            )
        return statements

    def _render_redirect(self, preprint: Preprint) -> str | None:
        if not self.settings.redirect_base_url:
            return None
        return self._render(
            "redirect.sql.j2",
            preprint_id=preprint.id,
            base_url=self.settings.redirect_base_url.rstrip("/"),
        )

    def _render_relation(self, preprint: Preprint) -> str | None:
        doi = preprint.attributes.doi
        if not doi:
            return None
        return self._render(
            "relation.sql.j2",
            preprint_id=preprint.id,
            settings=[
                ("relationStatus", DefaultValues.PUBLICATION_RELATION),
                ("vorDoi", doi),
            ],
        )

    def _render_import_command(
        self, preprint: Preprint, authors: list[dict[str, str]]
    ) -> str | None:
        user = self.settings.user or (authors[0]["username"] if authors else None)
        if not user:
            logger.warning(f"No import user available for preprint {preprint.id}")
            return None
        return self._render(
            "import_command.sh.j2",
            path=self.settings.xml_path(preprint.id).resolve(),
            context=self.settings.context,
            user=user,
        )
