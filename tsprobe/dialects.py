"""
Copyright (C) 2025  Andrew Speakman and other contributors

This file is part of TSProbe, a probe of timestamp and time zone handling in common databases with a DB API2.0 PEP-0249 interface

TSProbe is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

TSProbe is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <http://www.gnu.org/licenses/>.
"""
from datetime import datetime

from .convert import nquote, is_offset, convert_isodtime, text_value

try:
    import psycopg2
    PSYCOPG2 = True
except ImportError:
    PSYCOPG2 = False

try:
    import mysql.connector
    MYSQCON = True
except ImportError:
    MYSQCON = False

try:
    import oracledb
    ORACLEDB = True
except ImportError:
    ORACLEDB = False

DRIVER_PACKAGES = { # db type -> (import name, distribution name) used in error messages
    'POSTGRESQL': ('psycopg2', 'psycopg2-binary'),
    'MYSQL': ('mysql.connector', 'mysql-connector-python'),
    'ORACLE': ('oracledb', 'oracledb'),
    'SQLITE': ('sqlite3', None),
}

# Each dialect is a dict of SQL fragments/templates, table name substituted with %(table)s
# 'drop' and 'create' are complete statements, 'session_zone' takes a quoted literal
# 'shifts_with_session' flags backends whose TIMESTAMP columns are stored as instants
# and re-rendered in the session time zone at read time

CREATE_COLUMNS = """(
    created_timestamp TIMESTAMP NOT NULL,
    timestamp_val TIMESTAMP NULL,
    remarks %(remarks_type)s)"""

MYSQL_DIALECT = {
    'drop': 'DROP TABLE IF EXISTS %(table)s CASCADE',
    'create': 'CREATE TABLE %(table)s ' + CREATE_COLUMNS % { 'remarks_type': 'VARCHAR(200)' },
    'session_zone': 'SET time_zone = %s',
    'session_offset': 'SET time_zone = %s',
    'text_type': 'CHAR',
    'localtimestamp': 'LOCALTIMESTAMP',
    'timestamp_literal': "TIMESTAMP %(value)s AS %(alias)s",
    'dual': '',
    'placeholder': '%s',
    'shifts_with_session': True, # TIMESTAMP is stored in UTC and converted using time_zone
}

ORACLE_DIALECT = {
    'drop': """BEGIN
  FOR i IN (SELECT 1 FROM user_tables WHERE table_name = '%(TABLE)s') LOOP
    EXECUTE IMMEDIATE 'DROP TABLE %(TABLE)s CASCADE CONSTRAINTS PURGE';
  END LOOP;
END;""", # no DROP TABLE IF EXISTS before 23c
    'create': 'CREATE TABLE %(table)s ' + CREATE_COLUMNS % { 'remarks_type': 'VARCHAR2(200 CHAR) NULL' },
    'session_zone': 'ALTER SESSION SET TIME_ZONE = %s',
    'session_offset': 'ALTER SESSION SET TIME_ZONE = %s',
    'text_type': 'VARCHAR2(30 CHAR)',
    'localtimestamp': 'LOCALTIMESTAMP',
    'timestamp_literal': "TIMESTAMP %(value)s AS %(alias)s",
    'dual': ' FROM DUAL',
    'placeholder': ':%d',
    'shifts_with_session': False,
}

POSTGRES_DIALECT = {
    'drop': 'DROP TABLE IF EXISTS %(table)s CASCADE',
    'create': 'CREATE TABLE %(table)s ' + CREATE_COLUMNS % { 'remarks_type': 'VARCHAR(200)' },
    'session_zone': 'SET TIMEZONE = %s',
    # a bare '+05' string is read as a POSIX zone (sign inverted) so offsets go in as intervals
    'session_offset': 'SET TIME ZONE INTERVAL %s HOUR TO MINUTE',
    'text_type': 'VARCHAR',
    'localtimestamp': 'LOCALTIMESTAMP',
    'timestamp_literal': "TIMESTAMP %(value)s AS %(alias)s",
    'dual': '',
    'placeholder': '%s',
    'shifts_with_session': False,
}

SQLITE_DIALECT = {
    'drop': 'DROP TABLE IF EXISTS %(table)s',
    'create': 'CREATE TABLE %(table)s ' + CREATE_COLUMNS % { 'remarks_type': 'VARCHAR(200)' },
    'session_zone': None, # no session time zone in SQLite
    'session_offset': None,
    'text_type': 'TEXT',
    'localtimestamp': "datetime('now', 'localtime')",
    'timestamp_literal': "%(value)s AS \"%(alias)s [timestamp]\"", # converted via PARSE_COLNAMES
    'dual': '',
    'placeholder': '?',
    'shifts_with_session': False,
}

DIALECTS = {
    'MYSQL': MYSQL_DIALECT,
    'ORACLE': ORACLE_DIALECT,
    'POSTGRESQL': POSTGRES_DIALECT,
    'SQLITE': SQLITE_DIALECT,
}

def get_dialect(db_type):
    try:
        return DIALECTS[db_type.upper()]
    except KeyError:
        raise ValueError('No SQL dialect for database type %s' % db_type)

def drop_sql(dialect, table_name):
    return dialect['drop'] % { 'table': table_name, 'TABLE': table_name.upper() }

def create_sql(dialect, table_name):
    return dialect['create'] % { 'table': table_name }

def session_zone_sql(dialect, zone):
    ' statement setting the session time zone to a named zone or +hh:mm offset, None if unsupported '
    template = dialect['session_offset'] if is_offset(zone) else dialect['session_zone']
    if template is None:
        return None
    return template % nquote(zone)

def cast_text(dialect, expr):
    return 'CAST(%s AS %s)' % (expr, dialect['text_type'])

def placeholders(dialect, count):
    ph = dialect['placeholder']
    if '%d' in ph:
        return [ ph % (i + 1) for i in range(count) ] # numbered (Oracle)
    return [ ph ] * count

def timestamp_literal(dialect, value, alias):
    return dialect['timestamp_literal'] % { 'value': nquote(text_value(value)), 'alias': alias }

# Adapter/converter functions for SQLite which has no native timestamp type
def adapt_datetime(val):
    return val.isoformat(' ') if val is not None else None # impose DBAPI standard space separator (not Python standard 'T')

def register_sqlite(dbmodule):
    # module wide registration - replaces the default (deprecated) sqlite3 datetime handling
    dbmodule.register_adapter(datetime, adapt_datetime)
    dbmodule.register_converter('timestamp', convert_isodtime)
