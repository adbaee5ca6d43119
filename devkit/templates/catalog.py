"""Template catalog and variable resolution for plugin scaffolds."""

import json
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from devkit.errors import TemplateError, TemplateNotFoundError, TemplateVariableError
from devkit.templates.engine import missing_variables, process_template, to_pascal_case

logger = logging.getLogger(__name__)

# Variables computed from ``name`` when the caller does not supply them
DERIVED_FROM_NAME = ("className", "componentName")

# Free-text variables also offered as quoted YAML scalars, as ``<name>Yaml``
YAML_QUOTED = ("author", "description")


def yaml_scalar(value: Any) -> str:
    """value as a double-quoted scalar, safe after a YAML key whatever it contains."""
    # a JSON string is a valid YAML double-quoted scalar
    return json.dumps(str(value), ensure_ascii=False)


class TemplateVariable(BaseModel):
    """A variable a template accepts."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["string", "number", "boolean"] = "string"
    default: Optional[Any] = None
    description: str = ""
    required: bool = False


class PluginTemplate(BaseModel):
    """A named scaffold: relative path -> file content, both with placeholders."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    files: Dict[str, str]
    dependencies: List[str] = Field(default_factory=list)
    instructions: str = ""
    variables: List[TemplateVariable] = Field(default_factory=list)

    def get_variable(self, name: str) -> Optional[TemplateVariable]:
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None


class TemplateCatalog:
    """Templates keyed by name. Registered once, never modified afterwards.

    A catalog is an ordinary object owned by whoever builds it (normally a
    PluginToolkit), so separate toolkits keep separate catalogs.
    """

    def __init__(self):
        self._templates: Dict[str, PluginTemplate] = {}

    @classmethod
    def with_builtins(cls) -> "TemplateCatalog":
        """A catalog pre-loaded with the basic, game-server and web-component templates."""
        from devkit.templates.builtin import BUILTIN_TEMPLATES

        catalog = cls()
        for template in BUILTIN_TEMPLATES:
            catalog.register(template)
        return catalog

    def register(self, template: PluginTemplate) -> None:
        """Add a template.

        Raises:
            TemplateError: A template with the same name is already registered
        """
        if template.name in self._templates:
            raise TemplateError(f"Template '{template.name}' is already registered")
        self._templates[template.name] = template.model_copy(deep=True)
        logger.debug(f"Registered template: {template.name}")

    def get(self, name: str) -> PluginTemplate:
        """Look up a template by name.

        Raises:
            TemplateNotFoundError: No such template
        """
        template = self._templates.get(name)
        if template is None:
            raise TemplateNotFoundError(name, self.list_names())
        return template.model_copy(deep=True)

    def has(self, name: str) -> bool:
        return name in self._templates

    def list_names(self) -> List[str]:
        return list(self._templates)

    def all(self) -> List[PluginTemplate]:
        return [template.model_copy(deep=True) for template in self._templates.values()]

    def __len__(self) -> int:
        return len(self._templates)


class VariableProcessor:
    """Prepares caller-supplied variables for a template and renders it."""

    def process(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Add variables derived from ``name`` that the caller did not give."""
        processed = dict(variables)
        name = processed.get("name")
        if name:
            for key in DERIVED_FROM_NAME:
                processed.setdefault(key, to_pascal_case(str(name)))
        return processed

    def resolve(self, template: PluginTemplate, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Derived values, then declared defaults, then a completeness check.

        Raises:
            TemplateVariableError: A required variable has no value, or a
                placeholder in the template would be left unresolved
        """
        resolved = self.process(variables)
        for variable in template.variables:
            if variable.name not in resolved and variable.default is not None:
                resolved[variable.name] = variable.default
        for key in YAML_QUOTED:
            if key in resolved:
                resolved.setdefault(f"{key}Yaml", yaml_scalar(resolved[key]))

        missing = [v.name for v in template.variables if v.required and v.name not in resolved]
        for key in missing_variables(template.files, resolved):
            if key not in missing:
                missing.append(key)
        if missing:
            raise TemplateVariableError(template.name, missing)
        return resolved

    def render(self, template: PluginTemplate, variables: Dict[str, Any]) -> PluginTemplate:
        """A copy of template with every path and content substituted."""
        resolved = self.resolve(template, variables)
        files = {
            process_template(path, resolved): process_template(content, resolved)
            for path, content in template.files.items()
        }
        return template.model_copy(update={
            "files": files,
            "instructions": process_template(template.instructions, resolved),
        })
