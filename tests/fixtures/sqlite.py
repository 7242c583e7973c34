import sqlite3

import plugin_oracle as po
import pytest
from plugin_oracle.pub import ConnectRequest
from tests.fixtures.data import AGENTS, CUSTOMERS, ORDERS

SCHEMA = """
CREATE TABLE AGENTS (
    AGENT_CODE CHAR(4) NOT NULL PRIMARY KEY,
    AGENT_NAME VARCHAR(40),
    WORKING_AREA VARCHAR(35),
    COMMISSION REAL,
    PHONE_NO VARCHAR(15),
    UPDATED_AT DATETIME,
    BIOGRAPHY VARCHAR(2056)
);
CREATE TABLE CUSTOMERS (
    CUST_CODE VARCHAR(6) NOT NULL PRIMARY KEY,
    CUST_NAME VARCHAR(40) NOT NULL,
    CUST_CITY VARCHAR(35),
    AGENT_CODE CHAR(4) REFERENCES AGENTS (AGENT_CODE)
);
CREATE TABLE ORDERS (
    ORD_NUM INTEGER NOT NULL PRIMARY KEY,
    ORD_AMOUNT DECIMAL(12,2) NOT NULL,
    ORD_DATE DATE NOT NULL,
    CUST_CODE VARCHAR(6) NOT NULL REFERENCES CUSTOMERS (CUST_CODE),
    AGENT_CODE CHAR(4) NOT NULL REFERENCES AGENTS (AGENT_CODE)
);
CREATE TABLE PREPOST (
    MESSAGE VARCHAR(100)
);
CREATE TABLE TYPES (
    "number" INTEGER NOT NULL PRIMARY KEY,
    "float" REAL,
    "date" DATE,
    "timestamp" TIMESTAMP,
    "char" CHAR(6),
    "varchar" VARCHAR(10),
    "blob" BLOB,
    "clob" CLOB,
    "flag" BOOLEAN,
    "price" DECIMAL(10,2),
    "untyped"
);
"""


def stage_test_data(path):
    """Create and fill the sample tables in the SQLite file at `path`."""
    cn = sqlite3.connect(path)
    try:
        cn.executescript(SCHEMA)
        cn.executemany('INSERT INTO AGENTS VALUES (?, ?, ?, ?, ?, ?, ?)', AGENTS)
        cn.executemany('INSERT INTO CUSTOMERS VALUES (?, ?, ?, ?)', CUSTOMERS)
        cn.executemany('INSERT INTO ORDERS VALUES (?, ?, ?, ?, ?)', ORDERS)
        cn.execute(
            'INSERT INTO TYPES VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)',
            (42, 123456.789, '1998-12-25', '1997-01-31 09:26:56.66', 'char  ',
             'varchar', b'blob data', 'clob', 1, 19.99, 'untyped'))
        cn.commit()
    finally:
        cn.close()


@pytest.fixture
def sqlite_file(tmp_path):
    """Path of a SQLite database staged with the sample tables."""
    path = str(tmp_path / 'plugin_oracle.db')
    stage_test_data(path)
    return path


@pytest.fixture
def sqlite_settings(sqlite_file):
    return po.Settings(drivername='sqlite', database=sqlite_file)


@pytest.fixture
def sqlite_conn(sqlite_settings):
    """Open session on the staged SQLite database."""
    cn = po.connect(sqlite_settings)
    yield cn
    cn.close()


@pytest.fixture
def sqlite_server(sqlite_settings):
    """Server connected to the staged SQLite database."""
    server = po.Server()
    server.connect(ConnectRequest.from_settings(sqlite_settings))
    yield server
    server.disconnect()
