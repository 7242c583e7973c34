"""
Record streaming against a staged SQLite database.
"""
import sqlite3

import plugin_oracle as po
import pytest
from plugin_oracle.exceptions import PublishError, ValidationError
from plugin_oracle.pub import ConnectRequest, DiscoverMode, DiscoverSchemasRequest, FilterKind
from plugin_oracle.pub import PublishFilter, ReadRequest, Schema
from tests.fixtures.mocks import ListSink


def agents_shape(server):
    request = DiscoverSchemasRequest(mode=DiscoverMode.REFRESH, to_refresh=[Schema(id='"main"."AGENTS"')])
    return server.discover_shapes(request).schemas[0]


def publish(server, schema, *filters, sink=None):
    sink = sink or ListSink()
    server.publish_stream(ReadRequest(schema=schema, filters=list(filters)), sink)
    return [r.data for r in sink.records]


def prepost_messages(path):
    cn = sqlite3.connect(path)
    try:
        return [row[0] for row in cn.execute('SELECT MESSAGE FROM PREPOST ORDER BY rowid')]
    finally:
        cn.close()


@pytest.fixture
def prepost_server(sqlite_file):
    """Server whose settings carry pre- and post-publish queries."""
    server = po.Server()
    server.connect(ConnectRequest.from_settings(po.Settings(
        drivername='sqlite',
        database=sqlite_file,
        pre_publish_query="INSERT INTO PREPOST (MESSAGE) VALUES ('pre')",
        post_publish_query="INSERT INTO PREPOST (MESSAGE) VALUES ('post')",
    )))
    yield server
    server.disconnect()


class TestPublish:

    def test_all_records(self, sqlite_server):
        records = publish(sqlite_server, agents_shape(sqlite_server))
        assert len(records) == 12

        alex = next(r for r in records if r['"AGENT_CODE"'] == 'A003')
        assert alex['"AGENT_NAME"'] == 'Alex'
        assert alex['"WORKING_AREA"'] == 'London'
        assert alex['"COMMISSION"'] == 0.13
        assert alex['"PHONE_NO"'] == '075-12458969'
        assert alex['"UPDATED_AT"'] == '1969-01-02T05:00:00Z'
        assert alex['"BIOGRAPHY"'] == ''

    def test_record_keys_are_property_ids(self, sqlite_server):
        shape = agents_shape(sqlite_server)
        records = publish(sqlite_server, shape)
        assert list(records[0]) == [p.id for p in shape.properties]

    def test_shape_without_properties_is_described(self, sqlite_server):
        records = publish(sqlite_server, Schema(id='"main"."AGENTS"'))
        assert len(records) == 12

    def test_query_shape(self, sqlite_server):
        schema = Schema(name='Agent Names', query='SELECT AGENT_CODE, AGENT_NAME AS Name FROM Agents')
        records = publish(sqlite_server, schema)
        assert {'"AGENT_CODE"': 'A003', '"Name"': 'Alex'} in records

    def test_type_encodings(self, sqlite_server):
        record = publish(sqlite_server, Schema(id='"main"."TYPES"'))[0]
        assert record['"number"'] == 42
        assert record['"float"'] == pytest.approx(123456.789)
        assert record['"date"'] == '1998-12-25T00:00:00Z'
        assert record['"timestamp"'] == '1997-01-31T09:26:56.66Z'
        assert record['"char"'] == 'char  '
        assert record['"varchar"'] == 'varchar'
        assert record['"blob"'] == 'YmxvYiBkYXRh'
        assert record['"clob"'] == 'clob'
        assert record['"flag"'] is True
        assert record['"price"'] == 19.99
        assert record['"untyped"'] == 'untyped'

    def test_no_shape(self, sqlite_server):
        with pytest.raises(ValidationError):
            sqlite_server.publish_stream(ReadRequest(), ListSink())


class TestFilters:

    def test_equals(self, sqlite_server):
        records = publish(sqlite_server, agents_shape(sqlite_server),
                          PublishFilter(FilterKind.EQUALS, '"AGENT_CODE"', 'A003'))
        assert [r['"AGENT_NAME"'] for r in records] == ['Alex']

    def test_greater_than_datetime(self, sqlite_server):
        records = publish(sqlite_server, agents_shape(sqlite_server),
                          PublishFilter(FilterKind.GREATER_THAN, '"UPDATED_AT"', '1970-01-02T00:00:00Z'))
        assert len(records) == 7

    def test_datetime_offset_is_normalised(self, sqlite_server):
        records = publish(sqlite_server, agents_shape(sqlite_server),
                          PublishFilter(FilterKind.GREATER_THAN, '"UPDATED_AT"', '1970-01-01T19:00:00-05:00'))
        assert len(records) == 7

    def test_less_than_float(self, sqlite_server):
        records = publish(sqlite_server, agents_shape(sqlite_server),
                          PublishFilter(FilterKind.LESS_THAN, '"COMMISSION"', '0.12'))
        assert sorted(r['"AGENT_CODE"'] for r in records) == ['A002', 'A009']

    def test_filters_combine(self, sqlite_server):
        records = publish(sqlite_server, agents_shape(sqlite_server),
                          PublishFilter(FilterKind.GREATER_THAN, '"UPDATED_AT"', '1970-01-02T00:00:00Z'),
                          PublishFilter(FilterKind.LESS_THAN, '"COMMISSION"', '0.12'))
        assert [r['"AGENT_CODE"'] for r in records] == ['A009']

    def test_hostile_value_matches_nothing(self, sqlite_server):
        records = publish(sqlite_server, agents_shape(sqlite_server),
                          PublishFilter(FilterKind.EQUALS, '"AGENT_CODE"', "A003' OR '1'='1"))
        assert records == []

    def test_unknown_property(self, sqlite_server):
        with pytest.raises(ValidationError, match='unknown filter property'):
            publish(sqlite_server, agents_shape(sqlite_server),
                    PublishFilter(FilterKind.EQUALS, '"NOPE"', 'x'))

    def test_bad_value(self, sqlite_server):
        with pytest.raises(ValidationError):
            publish(sqlite_server, agents_shape(sqlite_server),
                    PublishFilter(FilterKind.GREATER_THAN, '"UPDATED_AT"', 'last tuesday'))


class TestPrePostPublish:

    def test_queries_bracket_the_publish(self, prepost_server, sqlite_file):
        records = publish(prepost_server, Schema(id='"main"."AGENTS"'))
        assert len(records) == 12
        assert prepost_messages(sqlite_file) == ['pre', 'post']

    def test_sink_failure_still_runs_post_query(self, prepost_server, sqlite_file):
        sink = ListSink(fail_after=3)
        with pytest.raises(BrokenPipeError):
            publish(prepost_server, Schema(id='"main"."AGENTS"'), sink=sink)
        assert len(sink.records) == 3
        assert prepost_messages(sqlite_file) == ['pre', 'post']

    def test_pre_query_failure_aborts(self, sqlite_file):
        server = po.Server()
        server.connect(ConnectRequest.from_settings(po.Settings(
            drivername='sqlite', database=sqlite_file,
            pre_publish_query='INSERT INTO NOWHERE VALUES (1)',
            post_publish_query="INSERT INTO PREPOST (MESSAGE) VALUES ('post')",
        )))
        sink = ListSink()
        try:
            with pytest.raises(PublishError, match='pre-publish query failed'):
                server.publish_stream(ReadRequest(schema=Schema(id='"main"."AGENTS"')), sink)
        finally:
            server.disconnect()
        assert sink.records == []
        assert prepost_messages(sqlite_file) == []

    def test_post_query_failure(self, sqlite_file):
        server = po.Server()
        server.connect(ConnectRequest.from_settings(po.Settings(
            drivername='sqlite', database=sqlite_file,
            post_publish_query='INSERT INTO NOWHERE VALUES (1)',
        )))
        try:
            with pytest.raises(PublishError, match='post-publish query failed'):
                publish(server, Schema(id='"main"."AGENTS"'))
        finally:
            server.disconnect()

    def test_stream_and_post_query_failures_are_combined(self, sqlite_file):
        server = po.Server()
        server.connect(ConnectRequest.from_settings(po.Settings(
            drivername='sqlite', database=sqlite_file,
            post_publish_query='INSERT INTO NOWHERE VALUES (1)',
        )))
        try:
            with pytest.raises(PublishError) as exc_info:
                publish(server, Schema(id='"main"."AGENTS"'), sink=ListSink(fail_after=0))
        finally:
            server.disconnect()
        message = str(exc_info.value)
        assert message.startswith('sink closed; post-publish query failed')
        assert 'NOWHERE' in message
