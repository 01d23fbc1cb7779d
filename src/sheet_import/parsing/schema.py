from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence, Union

from sheet_import.errors import ConfigurationError

from .coercion import type_from_name


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """Any given source column's configurable expectations."""
    source_name: str                    # header text in the source file
    target_field: str                   # field the value is written to
    data_type: str | None = None        # dynamic records only; typed records use the declared field type
    required: bool = False              # an empty cell is a row fault
    format_pattern: str | None = None   # strptime pattern for date columns
    default_value: Any = None           # used when the column is absent or the cell is empty

    def declared_type(self) -> Any:
        try:
            return type_from_name(self.data_type)
        except KeyError:
            raise ConfigurationError(f"{self.source_name}: unknown data type {self.data_type!r}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> list["ColumnSpec"]:
        return [cls(source_name=k, target_field=v) for k, v in mapping.items()]

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ColumnSpec":
        """Template JSON form, camelCase or snake_case keys."""
        def pick(*names: str, default: Any = None) -> Any:
            for n in names:
                if n in d:
                    return d[n]
            return default

        return cls(
            source_name=str(pick("source_name", "sourceName", "excelColumnName", default="")),
            target_field=str(pick("target_field", "targetField", "targetFieldName", default="")),
            data_type=pick("data_type", "dataType"),
            required=bool(pick("required", "isRequired", default=False)),
            format_pattern=pick("format_pattern", "formatPattern") or None,
            default_value=pick("default_value", "defaultValue"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_name": self.source_name,
            "target_field": self.target_field,
            "data_type": self.data_type,
            "required": self.required,
            "format_pattern": self.format_pattern,
            "default_value": self.default_value,
        }


ColumnMappingInput = Union[Mapping[str, str], Sequence[ColumnSpec], None]


def normalize_column_specs(mapping: ColumnMappingInput) -> list[ColumnSpec]:
    """
    Accepts a `{source: target}` mapping or `ColumnSpec`s.

    - blank source or target entries are dropped silently,
    - names are trimmed,
    - two sources writing the same target (case-insensitive) is a `ConfigurationError`.
    """
    if mapping is None:
        return []
    specs: Iterable[ColumnSpec]
    if isinstance(mapping, Mapping):
        specs = ColumnSpec.from_mapping(mapping)
    else:
        specs = mapping

    out: list[ColumnSpec] = []
    seen_targets: dict[str, str] = {}
    seen_sources: set[str] = set()
    for spec in specs:
        source = (spec.source_name or "").strip()
        target = (spec.target_field or "").strip()
        if not source or not target:
            continue
        if source.lower() in seen_sources:
            continue

        previous = seen_targets.get(target.lower())
        if previous is not None:
            raise ConfigurationError(
                f"columns {previous!r} and {source!r} both map to field {target!r}"
            )
        seen_targets[target.lower()] = source
        seen_sources.add(source.lower())

        out.append(
            ColumnSpec(
                source_name=source,
                target_field=target,
                data_type=spec.data_type,
                required=spec.required,
                format_pattern=spec.format_pattern,
                default_value=spec.default_value,
            )
        )
    return out


@dataclass(frozen=True)
class ImportTemplate:
    """Reusable import configuration, stored as JSON by `TemplateRegistry`."""
    id: str
    name: str = ""
    description: str = ""
    data_source: str = ""
    has_header: bool = True
    start_row_index: int = 0            # 0-based sheet row of the header (or first data row)
    columns: tuple[ColumnSpec, ...] = ()
    unmapped_field_name: str | None = None
    sensitive_field_names: tuple[str, ...] | None = None
    extensions: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ImportTemplate":
        template_id = d.get("id")
        if not template_id:
            raise ConfigurationError("template is missing its id")
        columns = d.get("columns", d.get("columnMappings", []))
        if not isinstance(columns, list):
            raise ConfigurationError(f"template {template_id}: columns must be a list")
        sensitive = d.get("sensitive_field_names", d.get("sensitiveFieldNames"))
        if d.get("row_validations", d.get("rowValidations")):
            raise ConfigurationError(
                f"template {template_id}: row validation expressions are not supported, "
                "override ImportAdapter.validate instead"
            )
        start_row = d.get("start_row_index", d.get("startRowIndex", 0))
        if isinstance(start_row, bool) or not isinstance(start_row, int) or start_row < 0:
            raise ConfigurationError(f"template {template_id}: start_row_index must be a non-negative integer")
        return cls(
            id=str(template_id),
            name=str(d.get("name", "")),
            description=str(d.get("description", "")),
            data_source=str(d.get("data_source", d.get("dataSource", ""))),
            has_header=bool(d.get("has_header", d.get("hasHeader", True))),
            start_row_index=start_row,
            columns=tuple(ColumnSpec.from_dict(c) for c in columns),
            unmapped_field_name=d.get("unmapped_field_name", d.get("unmappedFieldName")),
            sensitive_field_names=tuple(sensitive) if sensitive is not None else None,
            extensions=dict(d.get("extensions", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "data_source": self.data_source,
            "has_header": self.has_header,
            "start_row_index": self.start_row_index,
            "columns": [c.to_dict() for c in self.columns],
            "unmapped_field_name": self.unmapped_field_name,
            "sensitive_field_names": list(self.sensitive_field_names) if self.sensitive_field_names is not None else None,
            "extensions": dict(self.extensions),
        }
