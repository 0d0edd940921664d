"""
Template Registry

Loads template documents (JSON or YAML) and keeps them by name.

- load_template(): one document, structural errors propagate
- TemplateRegistry: a directory of documents; broken ones are logged
  and skipped unless strict
"""

import json
import yaml
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..config import MatcherConfig
from ..exceptions import DeserializationError, HashDecodeError
from ..utils.logger import setup_logging
from .imgutils import ImageLike
from .matcher import TemplateMatcher
from .schema import Template

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".json", ".yaml", ".yml")

_NUMERIC_TAGS = ("tag:yaml.org,2002:int", "tag:yaml.org,2002:float")


class TemplateLoader(yaml.SafeLoader):
    """
    SafeLoader that keeps fingerprint values as written.

    Unquoted hex like 0000000000000017 would otherwise resolve to an
    (octal) int under YAML 1.1.
    """

    def construct_mapping(self, node, deep=False):
        for key_node, value_node in node.value:
            if (
                isinstance(key_node, yaml.ScalarNode)
                and key_node.value == "fingerprint"
                and isinstance(value_node, yaml.ScalarNode)
                and value_node.tag in _NUMERIC_TAGS
            ):
                value_node.tag = "tag:yaml.org,2002:str"
        return super().construct_mapping(node, deep=deep)


def parse_template(
    data: Union[str, bytes, Dict[str, Any]],
    strict: bool = False,
    source: str = "<memory>"
) -> Template:
    """
    Deserialize a template from a dict or JSON text.

    Args:
        data: decoded document or JSON text
        strict: fail on malformed fingerprints instead of warning
        source: name used in log and error messages

    Raises:
        DeserializationError: malformed document (or fingerprint, if strict)
    """
    if isinstance(data, (str, bytes)):
        template = Template.from_json(data)
    else:
        template = Template.from_dict(data)

    problems = template.invalid_fingerprints()
    if problems:
        if strict:
            cause = HashDecodeError(", ".join(problems), component="schema")
            raise DeserializationError(
                f"Template {source} has malformed fingerprints",
                component="registry",
                original_error=cause,
            ) from cause
        # never matches, but loading continues
        for problem in problems:
            logger.warning(f"Template {source}: malformed {problem}, it will never match")

    return template


def load_template(source: Union[str, Path], strict: Optional[bool] = None) -> Template:
    """
    Read and deserialize a template document.

    Args:
        source: path to a .json, .yaml or .yml file
        strict: fail on malformed fingerprints instead of warning;
            None uses MatcherConfig.from_env().strict_fingerprints

    Returns:
        Template

    Raises:
        DeserializationError: document is structurally invalid or not UTF-8
        OSError: file cannot be read
    """
    if strict is None:
        strict = MatcherConfig.from_env().strict_fingerprints

    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DeserializationError(f"Template {path} is not valid UTF-8", component="registry", original_error=e) from e

    if path.suffix.lower() in (".yaml", ".yml"):
        try:
            data = yaml.load(text, Loader=TemplateLoader)
        except yaml.YAMLError as e:
            raise DeserializationError(f"Invalid YAML in {path}", component="registry", original_error=e) from e
        template = parse_template(data, strict=strict, source=str(path))
    else:
        template = parse_template(text, strict=strict, source=str(path))

    logger.debug(f"Loaded template '{template.title}' from {path}")
    return template


def dump_template(template: Template, indent: Optional[int] = 2) -> str:
    """Encode a template to JSON text in the wire format."""
    return template.to_json(indent=indent)


class TemplateRegistry:
    """
    Named collection of templates loaded from a directory.

    Templates are keyed by file stem and probed in name order.
    """

    def __init__(
        self,
        templates_dir: Optional[Union[str, Path]] = None,
        strict: bool = False,
        auto_load: bool = True,
        matcher: Optional[TemplateMatcher] = None,
        workers: int = 1
    ):
        """
        Initialize template registry.

        Args:
            templates_dir: directory containing template documents
            strict: propagate load errors instead of skipping the document
            auto_load: whether to load templates on init
            matcher: matcher used by match()/match_all()
            workers: thread pool size for match_all()
        """
        self.templates_dir = Path(templates_dir) if templates_dir else Path(MatcherConfig().templates_dir)
        self.strict = strict
        self.matcher = matcher or TemplateMatcher()
        self.workers = workers

        self._templates: Dict[str, Template] = {}
        self._loaded = False

        if auto_load:
            self.load_all()

    def load_all(self) -> int:
        """
        Load all templates from the configured directory.

        Returns:
            Number of templates loaded
        """
        if not self.templates_dir.exists():
            logger.debug(f"Templates dir not found: {self.templates_dir}")
            self._loaded = True
            return 0

        count = 0
        for path in sorted(self.templates_dir.iterdir()):
            if path.suffix.lower() not in TEMPLATE_SUFFIXES or not path.is_file():
                continue
            try:
                template = load_template(path, strict=self.strict)
            except (DeserializationError, OSError) as e:
                if self.strict:
                    raise
                logger.warning(f"Failed to load template {path}: {e}")
                continue

            if path.stem in self._templates:
                logger.debug(f"Template '{path.stem}' overridden by {path.name}")
            self._templates[path.stem] = template
            count += 1

        self._loaded = True
        logger.info(f"Loaded {count} templates ({len(self._templates)} unique)")
        return count

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load_all()

    def get_all(self) -> List[Template]:
        """Get all loaded templates."""
        self._ensure_loaded()
        return [self._templates[name] for name in self.names()]

    def get_by_name(self, name: str) -> Optional[Template]:
        self._ensure_loaded()
        return self._templates.get(name)

    def names(self) -> List[str]:
        self._ensure_loaded()
        return sorted(self._templates)

    def add_template(self, name: str, template: Template) -> None:
        """Add a template to the registry (runtime only)."""
        self._templates[name] = template

    def count(self) -> int:
        """Get total number of templates."""
        self._ensure_loaded()
        return len(self._templates)

    def clear(self) -> None:
        """Clear all loaded templates."""
        self._templates.clear()
        self._loaded = False

    def match(self, image: ImageLike, image_name: str = "") -> Optional[str]:
        """Name of the first template the image matches, or None."""
        for name in self.names():
            if self.matcher.matches(image, self._templates[name], image_name=image_name):
                logger.debug(f"Image matches template '{name}'")
                return name
        return None

    def match_all(self, image: ImageLike, image_name: str = "") -> List[str]:
        """Names of every template the image matches."""
        names = self.names()
        templates = [self._templates[name] for name in names]
        found = self.matcher.find_all(image, templates, workers=self.workers, image_name=image_name)
        matched = {id(t) for t in found}
        return [name for name, t in zip(names, templates) if id(t) in matched]


# Global registry instance
_registry: Optional[TemplateRegistry] = None


def get_registry() -> TemplateRegistry:
    """Get the global template registry (lazy loaded from environment config)."""
    global _registry
    if _registry is None:
        config = MatcherConfig.from_env()
        setup_logging(config.log_level)
        _registry = TemplateRegistry(
            templates_dir=config.templates_dir,
            strict=config.strict_fingerprints,
            matcher=TemplateMatcher(trace_log_file=config.trace_log_file),
            workers=config.match_workers,
        )
    return _registry


def reset_registry() -> None:
    """Reset the global registry (for testing)."""
    global _registry
    _registry = None
