"""
Test per-session configuration applied when a native session opens.
"""
from plugin_oracle.strategy import OracleStrategy
from plugin_oracle.strategy.oracle import SESSION_TIME_ZONE_SQL


class TestOracleSessionSetup:
    """Test suite for Oracle session configuration"""

    def test_enables_autocommit(self, mocker):
        conn = mocker.Mock()
        conn.driver_connection = mocker.MagicMock()
        conn.driver_connection.autocommit = False

        OracleStrategy().configure_connection(conn)

        assert conn.driver_connection.autocommit is True

    def test_pins_session_time_zone_to_utc(self, mocker):
        conn = mocker.Mock()
        conn.driver_connection = mocker.MagicMock()
        cursor = conn.driver_connection.cursor.return_value.__enter__.return_value

        OracleStrategy().configure_connection(conn)

        cursor.execute.assert_called_once_with(SESSION_TIME_ZONE_SQL)
        assert SESSION_TIME_ZONE_SQL == "ALTER SESSION SET TIME_ZONE = 'UTC'"

    def test_raw_driver_connection(self, mocker):
        raw = mocker.MagicMock(spec=['autocommit', 'cursor'])

        OracleStrategy().configure_connection(raw)

        assert raw.autocommit is True
        raw.cursor.return_value.__enter__.return_value.execute.assert_called_once_with(
            SESSION_TIME_ZONE_SQL)
