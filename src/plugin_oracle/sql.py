"""
SQL identifier handling and filter translation.

Main entry points:
- `quote_identifier()` - Quote table/column names
- `split_identifier()` - Split a dotted, optionally quoted, object name
- `translate_filters(strategy, properties, filters)` - Build a parameterized
  restriction clause from publish filters

Filter values are never interpolated into SQL text: every value is bound
through the dialect's placeholder, and every column reference is re-quoted
from the property's bare name.
"""
import datetime
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import dateutil.parser
from plugin_oracle.adapters.type_mapping import resolve_type
from plugin_oracle.exceptions import ValidationError
from plugin_oracle.pub import FilterKind, Property, PropertyType, PublishFilter, Schema

if TYPE_CHECKING:
    from plugin_oracle.strategy import DatabaseStrategy

logger = logging.getLogger(__name__)

_OPERATORS = {
    FilterKind.EQUALS: '=',
    FilterKind.GREATER_THAN: '>',
    FilterKind.LESS_THAN: '<',
}


def quote_identifier(identifier: str, dialect: str = 'oracle') -> str:
    """Safely quote database identifiers.

    Parameters
        identifier: Table or column name
        dialect: Database dialect

    Returns
        Quoted identifier

    Raises
        ValueError: If dialect is unsupported
    """
    if dialect in {'oracle', 'sqlite'}:
        return '"' + identifier.replace('"', '""') + '"'

    raise ValueError(f'Unknown dialect: {dialect}')


def unquote_identifier(identifier: str) -> str:
    """Strip one level of double quotes from an identifier, if present."""
    if len(identifier) >= 2 and identifier[0] == '"' and identifier[-1] == '"':
        return identifier[1:-1].replace('""', '"')
    return identifier


def split_identifier(identifier: str, fold_case: bool = False) -> list[str]:
    """Split a dotted object name into its parts.

    Handles ``"OWNER"."NAME"``, ``OWNER.NAME`` and bare ``NAME``. Quoted
    parts keep their case and may contain dots; unquoted parts are stripped
    and, when `fold_case` is set, upper-cased.

    Raises
        ValidationError: If the name is empty or has an unterminated quote
    """
    parts: list[str] = []
    current: list[str] = []
    quoted = False
    in_quotes = False
    i = 0
    text = identifier.strip()
    while i < len(text):
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if text[i + 1:i + 2] == '"':
                    current.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = quoted = True
        elif ch == '.':
            parts.append(_finish_part(current, quoted, fold_case))
            current, quoted = [], False
        else:
            current.append(ch)
        i += 1

    if in_quotes:
        raise ValidationError(f'unterminated quote in identifier: {identifier!r}')
    parts.append(_finish_part(current, quoted, fold_case))
    if not all(parts):
        raise ValidationError(f'invalid identifier: {identifier!r}')
    return parts


def _finish_part(chars: list[str], quoted: bool, fold_case: bool) -> str:
    part = ''.join(chars)
    if quoted:
        return part
    part = part.strip()
    return part.upper() if fold_case else part


@dataclass
class FilterClause:
    """Parameterized restriction clause: ``sql`` is empty when there are no filters.
    """
    sql: str = ''
    params: list[Any] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.sql)


def parse_filter_value(property_type: PropertyType, value: Any) -> Any:
    """Convert a filter's string value to a bind value of the property's type.

    DATETIME values are normalised to UTC; naive values are taken as UTC.

    Raises
        ValidationError: If the value cannot be parsed
    """
    try:
        if property_type is PropertyType.INTEGER:
            return int(str(value).strip())
        if property_type in {PropertyType.FLOAT, PropertyType.DECIMAL}:
            return float(str(value).strip())
        if property_type in {PropertyType.DATETIME, PropertyType.DATE}:
            parsed = dateutil.parser.isoparse(str(value).strip())
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=datetime.timezone.utc)
            return parsed.astimezone(datetime.timezone.utc)
        if property_type is PropertyType.BOOL:
            lowered = str(value).strip().lower()
            if lowered in {'true', '1'}:
                return True
            if lowered in {'false', '0'}:
                return False
            raise ValueError(f'{value!r} is not a boolean')
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(f'invalid {property_type.value} filter value {value!r}: {exc}') from exc
    return value if isinstance(value, str) else str(value)


def translate_filters(strategy: 'DatabaseStrategy', properties: list[Property],
                      filters: list[PublishFilter]) -> FilterClause:
    """Translate publish filters into a parameterized restriction clause.

    Filters are joined with AND. Column references use the row source alias
    ``t``.

    Raises
        ValidationError: If a filter names an unknown property, has an
            unsupported kind, or carries an unparsable value
    """
    if not filters:
        return FilterClause()

    by_id = {p.id: p for p in properties}
    conditions = []
    params = []
    for f in filters:
        prop = by_id.get(f.property_id)
        if prop is None:
            raise ValidationError(f'unknown filter property: {f.property_id!r}')
        operator = _OPERATORS.get(f.kind)
        if operator is None:
            raise ValidationError(f'unsupported filter kind: {f.kind!r}')

        value = parse_filter_value(prop.type, f.value)
        params.append(strategy.adapt_filter_value(prop.type, value))
        column = strategy.quote_identifier(unquote_identifier(prop.id))
        bind = strategy.bind_expression(len(params), prop.type)
        conditions.append(f't.{column} {operator} {bind}')

    logger.debug(f'Translated {len(filters)} filter(s)')
    return FilterClause(' AND '.join(conditions), params)


def strip_statement(sql: str) -> str:
    """Strip whitespace and trailing semicolons so a statement can be nested."""
    return sql.strip().rstrip(';').rstrip()


def source_sql(strategy: 'DatabaseStrategy', schema: Schema) -> str:
    """Return the row source of a shape: its query as a sub-source, else its object.
    """
    if schema.query:
        return f'({strip_statement(schema.query)})'
    parts = split_identifier(schema.id, fold_case=strategy.folds_case)
    return '.'.join(strategy.quote_identifier(p) for p in parts)


def build_select(strategy: 'DatabaseStrategy', schema: Schema,
                 clause: FilterClause | None = None) -> tuple[str, list[Any]]:
    """Build the SELECT over a shape's row source.

    Selects exactly the shape's properties in order, wrapping columns whose
    native type needs a select expression, and appends the restriction
    clause when present.
    """
    columns = []
    for prop in schema.properties:
        name = strategy.quote_identifier(unquote_identifier(prop.id))
        column = f't.{name}'
        expression = resolve_type(strategy.dialect_name, prop.type_at_source).select_expression
        if expression:
            column = f'{expression.format(column=column)} AS {name}'
        columns.append(column)

    sql = f"SELECT {', '.join(columns) or 't.*'} FROM {source_sql(strategy, schema)} t"
    if clause:
        sql += f' WHERE {clause.sql}'
    return sql, list(clause.params) if clause else []


def build_count(strategy: 'DatabaseStrategy', schema: Schema,
                clause: FilterClause | None = None) -> tuple[str, list[Any]]:
    """Build an exact COUNT(*) over the same row source as `build_select`.
    """
    sql = f'SELECT COUNT(*) FROM {source_sql(strategy, schema)} t'
    if clause:
        sql += f' WHERE {clause.sql}'
    return sql, list(clause.params) if clause else []
