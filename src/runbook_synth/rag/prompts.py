"""
Prompt template management

Templates live under prompts/<name>/<version>/template.jinja2 with a
meta.yaml beside them and are addressed as "<name>:<version>".
"""

import logging
from pathlib import Path
from typing import Any, Optional

import jinja2
import yaml

from ..errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


def _split_key(template_key: str) -> tuple[str, str]:
    name, sep, version = template_key.partition(":")
    if not sep or not name or not version:
        raise ValidationError(
            f"Template key must look like 'name:version', got '{template_key}'"
        )
    return name, version


class PromptManager:
    """Manages Jinja2 templates for LLM prompts"""

    def __init__(self, prompts_dir: Optional[str] = None):
        self.prompts_dir = Path(prompts_dir) if prompts_dir else DEFAULT_PROMPTS_DIR
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
            keep_trailing_newline=True,
        )

    def get_template(self, template_path: str) -> jinja2.Template:
        """Get Jinja2 template by path (e.g., 'checklist/v1/template.jinja2')"""
        try:
            return self.env.get_template(template_path)
        except jinja2.TemplateNotFound:
            logger.error(f"Template not found: {template_path}")
            raise

    def load_template_meta(self, template_key: str) -> dict[str, Any]:
        """Load template metadata (e.g., 'checklist:v1' -> meta.yaml)"""
        name, version = _split_key(template_key)
        meta_path = self.prompts_dir / name / version / "meta.yaml"

        if not meta_path.exists():
            logger.warning(f"Template metadata not found: {meta_path}")
            return {}

        with open(meta_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def render_template(self, template_key: str, context: dict[str, Any]) -> str:
        """Render template with context"""
        name, version = _split_key(template_key)
        template = self.get_template(f"{name}/{version}/template.jinja2")
        return template.render(**context)
