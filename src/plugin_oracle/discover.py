"""
Shape discovery.

Two modes:

- ALL enumerates the user tables and views visible to the session. With a
  zero sample size it returns stubs (id, name, properties); otherwise each
  object is discovered in full.
- REFRESH resolves each requested shape fully: a shape with a query uses it
  verbatim as the row source, otherwise its id is resolved to a native
  object. Full discovery builds properties, fetches a sample and counts.

A failure resolving one shape lands in that shape's ``errors`` and never
affects its siblings.
"""
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from plugin_oracle.exceptions import ConnectorError, QueryError
from plugin_oracle.pub import Count, CountKind, DiscoverMode, DiscoverSchemasRequest
from plugin_oracle.pub import Schema
from plugin_oracle.publish import sample_records
from plugin_oracle.sql import build_count
from plugin_oracle.strategy import ObjectName

if TYPE_CHECKING:
    from plugin_oracle.connection import ConnectionWrapper
    from plugin_oracle.options import Settings

logger = logging.getLogger(__name__)


def discover_shapes(cn: 'ConnectionWrapper', settings: 'Settings',
                    request: DiscoverSchemasRequest) -> list[Schema]:
    """Discover shapes according to the request mode.
    """
    if request.mode is DiscoverMode.REFRESH:
        shapes = [_discover_one(cn, settings, schema, request.sample_size, bypass_cache=True)
                  for schema in request.to_refresh]
    else:
        shapes = []
        for obj in cn.strategy.list_objects(cn):
            seed = Schema(id=obj.shape_id, name=f'{obj.owner}.{obj.name}')
            if request.sample_size > 0:
                shapes.append(_discover_one(cn, settings, seed, request.sample_size))
            else:
                shapes.append(_describe_one(cn, seed))

    failed = sum(1 for s in shapes if s.errors)
    logger.info(f'Discovered {len(shapes)} shape(s) in {request.mode.value} mode, {failed} with errors')
    return shapes


def describe_shape(cn: 'ConnectionWrapper', schema: Schema,
                   bypass_cache: bool = False) -> tuple[Schema, ObjectName | None]:
    """Resolve a shape's row source and build its properties.

    Caller-supplied ``is_key`` flags are carried over by property id.

    Returns
        The described shape and the native object behind it (None for
        query shapes)

    Raises
        QueryError: If the object does not exist or the query is invalid
    """
    strategy = cn.strategy
    if schema.query:
        obj = None
        columns = strategy.describe_query(cn, schema.query)
        shape_id, name = schema.id or schema.name, schema.name
    else:
        obj = strategy.resolve_object(cn, schema.id)
        if obj is None:
            raise QueryError(f'table or view {schema.id} does not exist')
        columns = strategy.get_columns(cn, obj, bypass_cache=bypass_cache)
        shape_id, name = obj.shape_id, schema.name or f'{obj.owner}.{obj.name}'

    keys = {p.id for p in schema.properties if p.is_key}
    properties = []
    for column in columns:
        prop = column.to_property(strategy.dialect_name)
        if prop.id in keys:
            prop.is_key = True
        properties.append(prop)

    described = replace(schema, id=shape_id, name=name, properties=properties,
                        sample=[], count=None, errors=[])
    return described, obj


def count_shape(cn: 'ConnectionWrapper', settings: 'Settings', schema: Schema,
                obj: ObjectName | None) -> Count:
    """Count a shape's rows: EXACT by aggregation unless estimates are enabled.
    """
    strategy = cn.strategy
    if settings.estimate_counts and obj is not None:
        estimate = strategy.estimate_count(cn, obj)
        if estimate is not None:
            return Count(kind=CountKind.ESTIMATE, value=estimate)
    sql, params = build_count(strategy, schema)
    return Count(kind=CountKind.EXACT, value=int(strategy.select_scalar(cn, sql, params) or 0))


def _describe_one(cn: 'ConnectionWrapper', schema: Schema) -> Schema:
    try:
        described, _ = describe_shape(cn, schema)
    except ConnectorError as exc:
        logger.warning(f'Could not describe shape {schema.id}: {exc}')
        return replace(schema, errors=[str(exc)])
    return described


def _discover_one(cn: 'ConnectionWrapper', settings: 'Settings', schema: Schema,
                  sample_size: int, bypass_cache: bool = False) -> Schema:
    try:
        described, obj = describe_shape(cn, schema, bypass_cache=bypass_cache)
        described.sample = sample_records(cn, described, sample_size)
        described.count = count_shape(cn, settings, described, obj)
    except ConnectorError as exc:
        logger.warning(f'Could not discover shape {schema.id or schema.name}: {exc}')
        return replace(schema, errors=[*schema.errors, str(exc)])
    return described
