"""
Unit tests for native type resolution and value encoding.
"""
import datetime
import decimal

import pytest
from dateutil.tz import tzoffset
from plugin_oracle.adapters.type_mapping import ColumnType, decode_value
from plugin_oracle.adapters.type_mapping import format_interval_ds, format_interval_ym
from plugin_oracle.adapters.type_mapping import format_rfc3339, resolve_type
from plugin_oracle.exceptions import TypeConversionError
from plugin_oracle.pub import PropertyType


class TestColumnType:

    @pytest.mark.parametrize(('text', 'expected'), [
        ('VARCHAR2(40)', ColumnType('VARCHAR2', length=40)),
        ('varchar2(40 char)', ColumnType('VARCHAR2', length=40)),
        ('NUMBER(10,2)', ColumnType('NUMBER', precision=10, scale=2)),
        ('NUMBER(*,0)', ColumnType('NUMBER', scale=0)),
        ('NUMBER', ColumnType('NUMBER')),
        ('TIMESTAMP(6) WITH TIME ZONE', ColumnType('TIMESTAMP WITH TIME ZONE')),
        ('TIMESTAMP(3)', ColumnType('TIMESTAMP')),
        ('INTERVAL YEAR(2) TO MONTH', ColumnType('INTERVAL YEAR TO MONTH', precision=2)),
        ('INTERVAL DAY(4) TO SECOND(2)', ColumnType('INTERVAL DAY TO SECOND', precision=4, scale=2)),
        ('', ColumnType('')),
        (None, ColumnType('')),
    ])
    def test_parse(self, text, expected):
        assert ColumnType.parse(text) == expected

    @pytest.mark.parametrize(('column_type', 'expected'), [
        (ColumnType('CHAR', length=4), 'CHAR(4)'),
        (ColumnType('VARCHAR2', length=2056), 'VARCHAR2(2056)'),
        (ColumnType('NUMBER', precision=10, scale=2), 'NUMBER(10,2)'),
        (ColumnType('NUMBER', scale=0), 'NUMBER(*,0)'),
        (ColumnType('FLOAT', precision=126), 'FLOAT(126)'),
        (ColumnType('BINARY_FLOAT'), 'BINARY_FLOAT'),
        (ColumnType('TIMESTAMP WITH TIME ZONE'), 'TIMESTAMP WITH TIME ZONE'),
        (ColumnType('INTERVAL YEAR TO MONTH', precision=2), 'INTERVAL YEAR(2) TO MONTH'),
        (ColumnType('INTERVAL DAY TO SECOND', precision=4, scale=2), 'INTERVAL DAY(4) TO SECOND(2)'),
    ])
    def test_render(self, column_type, expected):
        assert column_type.render() == expected

    def test_render_parses_back(self):
        column_type = ColumnType('INTERVAL DAY TO SECOND', precision=4, scale=2)
        assert ColumnType.parse(column_type.render()) == column_type


class TestOracleResolution:

    @pytest.mark.parametrize(('type_at_source', 'expected'), [
        ('CHAR(4)', PropertyType.STRING),
        ('VARCHAR2(40)', PropertyType.STRING),
        ('VARCHAR2(1024)', PropertyType.STRING),
        ('VARCHAR2(2056)', PropertyType.TEXT),
        ('NVARCHAR2(10)', PropertyType.STRING),
        ('LONG', PropertyType.TEXT),
        ('NUMBER(10,0)', PropertyType.INTEGER),
        ('NUMBER(*,0)', PropertyType.INTEGER),
        ('NUMBER(12,2)', PropertyType.FLOAT),
        ('NUMBER', PropertyType.FLOAT),
        ('INTEGER', PropertyType.INTEGER),
        ('FLOAT(126)', PropertyType.FLOAT),
        ('BINARY_FLOAT', PropertyType.FLOAT),
        ('BINARY_DOUBLE', PropertyType.FLOAT),
        ('DATE', PropertyType.DATETIME),
        ('TIMESTAMP', PropertyType.DATETIME),
        ('TIMESTAMP WITH TIME ZONE', PropertyType.DATETIME),
        ('TIMESTAMP WITH LOCAL TIME ZONE', PropertyType.DATETIME),
        ('INTERVAL YEAR(2) TO MONTH', PropertyType.STRING),
        ('INTERVAL DAY(4) TO SECOND(2)', PropertyType.STRING),
        ('CLOB', PropertyType.STRING),
        ('BLOB', PropertyType.STRING),
        ('XMLTYPE', PropertyType.STRING),
        ('BOOLEAN', PropertyType.BOOL),
        ('SDO_GEOMETRY', PropertyType.STRING),
    ])
    def test_property_type(self, type_at_source, expected):
        assert resolve_type('oracle', type_at_source).property_type is expected

    def test_timestamp_with_time_zone_selects_offset_text(self):
        expression = resolve_type('oracle', 'TIMESTAMP WITH TIME ZONE').select_expression
        assert expression.format(column='t."UPDATED_AT"') == \
            'TO_CHAR(t."UPDATED_AT", \'YYYY-MM-DD"T"HH24:MI:SS.FF6TZH:TZM\')'

    def test_xml_selects_clob_value(self):
        expression = resolve_type('oracle', 'XMLTYPE').select_expression
        assert expression.format(column='t."xml"') == 't."xml".getClobVal()'

    def test_plain_types_have_no_select_expression(self):
        assert resolve_type('oracle', 'VARCHAR2(10)').select_expression is None


class TestSqliteResolution:

    @pytest.mark.parametrize(('declared', 'expected'), [
        ('INTEGER', PropertyType.INTEGER),
        ('BIGINT', PropertyType.INTEGER),
        ('CHAR(4)', PropertyType.STRING),
        ('VARCHAR(2056)', PropertyType.TEXT),
        ('TEXT', PropertyType.STRING),
        ('CLOB', PropertyType.STRING),
        ('REAL', PropertyType.FLOAT),
        ('DOUBLE PRECISION', PropertyType.FLOAT),
        ('DECIMAL(10,2)', PropertyType.FLOAT),
        ('NUMERIC(10,0)', PropertyType.INTEGER),
        ('BOOLEAN', PropertyType.BOOL),
        ('DATE', PropertyType.DATETIME),
        ('DATETIME', PropertyType.DATETIME),
        ('TIMESTAMP', PropertyType.DATETIME),
        ('BLOB', PropertyType.STRING),
        ('', PropertyType.STRING),
    ])
    def test_affinity(self, declared, expected):
        assert resolve_type('sqlite', declared).property_type is expected


class TestEncoding:

    def test_null_is_empty_for_textual_types(self):
        assert resolve_type('oracle', 'VARCHAR2(10)').encode(None) == ''
        assert resolve_type('oracle', 'VARCHAR2(2056)').encode(None) == ''

    def test_null_is_none_for_other_types(self):
        assert resolve_type('oracle', 'NUMBER(10,0)').encode(None) is None
        assert resolve_type('oracle', 'DATE').encode(None) is None
        assert resolve_type('oracle', 'BINARY_FLOAT').encode(None) is None

    def test_character_padding_is_preserved(self):
        assert resolve_type('oracle', 'CHAR(6)').encode('char  ') == 'char  '

    def test_integer(self):
        assert resolve_type('oracle', 'NUMBER(10,0)').encode(decimal.Decimal('42')) == 42
        assert resolve_type('oracle', 'NUMBER(10,0)').encode(42.0) == 42

    def test_float(self):
        value = resolve_type('oracle', 'NUMBER(12,2)').encode(decimal.Decimal('1000.50'))
        assert value == 1000.5
        assert isinstance(value, float)

    def test_unconvertible_number_raises(self):
        with pytest.raises(TypeConversionError):
            resolve_type('sqlite', 'REAL').encode('not a number')

    def test_naive_datetime_is_utc(self):
        value = datetime.datetime(1997, 1, 31, 9, 26, 56, 660000)
        assert resolve_type('oracle', 'TIMESTAMP').encode(value) == '1997-01-31T09:26:56.66Z'

    def test_date_is_midnight_utc(self):
        assert resolve_type('oracle', 'DATE').encode(datetime.datetime(1998, 12, 25)) == '1998-12-25T00:00:00Z'

    def test_offset_text_keeps_offset(self):
        mapping = resolve_type('oracle', 'TIMESTAMP WITH TIME ZONE')
        assert mapping.encode('1997-01-31T09:26:56.660000+02:00') == '1997-01-31T09:26:56.66+02:00'
        assert mapping.encode('1969-01-02T00:00:00.000000-05:00') == '1969-01-02T00:00:00-05:00'

    def test_sqlite_datetime_text(self):
        assert resolve_type('sqlite', 'DATETIME').encode('1970-01-02 00:00:00') == '1970-01-02T00:00:00Z'
        assert resolve_type('sqlite', 'DATE').encode('1998-12-25') == '1998-12-25T00:00:00Z'

    def test_bad_datetime_text_raises(self):
        with pytest.raises(TypeConversionError):
            resolve_type('sqlite', 'DATETIME').encode('yesterday')

    def test_interval_year_to_month(self, mocker):
        interval = mocker.Mock(years=2, months=4)
        assert resolve_type('oracle', 'INTERVAL YEAR(2) TO MONTH').encode(interval) == '+02-04'

    def test_interval_day_to_second(self):
        value = datetime.timedelta(days=120, hours=6, minutes=31, seconds=14)
        assert resolve_type('oracle', 'INTERVAL DAY(4) TO SECOND(2)').encode(value) == '+0120 06:31:14.00'

    def test_lob_is_read(self, mocker):
        lob = mocker.Mock()
        lob.read.return_value = 'clob'
        assert resolve_type('oracle', 'CLOB').encode(lob) == 'clob'

    def test_blob_is_base64(self, mocker):
        lob = mocker.Mock()
        lob.read.return_value = b'blob data'
        assert resolve_type('oracle', 'BLOB').encode(lob) == 'YmxvYiBkYXRh'
        assert resolve_type('sqlite', 'BLOB').encode(b'blob data') == 'YmxvYiBkYXRh'

    def test_bool(self):
        assert resolve_type('sqlite', 'BOOLEAN').encode(1) is True
        assert resolve_type('sqlite', 'BOOLEAN').encode(0) is False

    def test_undeclared_type_encodes_by_value(self):
        mapping = resolve_type('sqlite', '')
        assert mapping.encode(42) == '42'
        assert mapping.encode(b'\x00\x01') == 'AAE='
        assert mapping.encode(datetime.datetime(2020, 1, 1)) == '2020-01-01T00:00:00Z'


class TestFormatting:

    def test_rfc3339_zero_offset_is_z(self):
        value = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
        assert format_rfc3339(value) == '2020-01-01T00:00:00Z'

    def test_rfc3339_negative_offset(self):
        value = datetime.datetime(1969, 1, 2, tzinfo=tzoffset(None, -5 * 3600))
        assert format_rfc3339(value) == '1969-01-02T00:00:00-05:00'

    def test_rfc3339_trims_fraction(self):
        assert format_rfc3339(datetime.datetime(2020, 1, 1, 0, 0, 0, 500000)) == '2020-01-01T00:00:00.5Z'

    def test_negative_intervals(self):
        assert format_interval_ym(-28) == '-02-04'
        assert format_interval_ds(-datetime.timedelta(days=1, hours=2), 2, 0) == '-01 02:00:00'


class TestDecoding:

    @pytest.mark.parametrize(('property_type', 'value', 'expected'), [
        (PropertyType.INTEGER, 42, 42),
        (PropertyType.INTEGER, '42', 42),
        (PropertyType.INTEGER, 42.0, 42),
        (PropertyType.FLOAT, '0.13', 0.13),
        (PropertyType.BOOL, 'true', True),
        (PropertyType.BOOL, 0, False),
        (PropertyType.STRING, 'A001', 'A001'),
        (PropertyType.STRING, '', ''),
        (PropertyType.TEXT, 12, '12'),
        (PropertyType.INTEGER, '', None),
        (PropertyType.DATETIME, '', None),
        (PropertyType.FLOAT, None, None),
    ])
    def test_decode(self, property_type, value, expected):
        assert decode_value(property_type, value) == expected

    def test_decode_datetime(self):
        value = decode_value(PropertyType.DATETIME, '1970-01-02T00:00:00Z')
        assert value == datetime.datetime(1970, 1, 2, tzinfo=datetime.timezone.utc)

    @pytest.mark.parametrize(('property_type', 'value'), [
        (PropertyType.INTEGER, 'abc'),
        (PropertyType.INTEGER, 1.5),
        (PropertyType.FLOAT, 'x'),
        (PropertyType.BOOL, 'maybe'),
        (PropertyType.DATETIME, 'not a date'),
    ])
    def test_decode_invalid(self, property_type, value):
        with pytest.raises(TypeConversionError):
            decode_value(property_type, value)
