"""Plugin scaffolding: placeholder engine, template catalog and built-in templates."""

from devkit.templates.catalog import PluginTemplate, TemplateCatalog, TemplateVariable, VariableProcessor
from devkit.templates.engine import (
    apply_template,
    extract_variables,
    missing_variables,
    process_template,
    to_pascal_case,
)

__all__ = [
    "PluginTemplate",
    "TemplateCatalog",
    "TemplateVariable",
    "VariableProcessor",
    "apply_template",
    "extract_variables",
    "missing_variables",
    "process_template",
    "to_pascal_case",
]
