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
from urllib.parse import urlsplit
from collections import OrderedDict, namedtuple
from contextlib import contextmanager
from datetime import datetime
import importlib
import logging
import sys

import pytz

from . import dialects
from . import settings
from .convert import get_zone, zone_name, localize, at_calendar, to_calendar, in_gap, is_ambiguous
from .convert import format_zoned, format_local, parse_local, parse_zoned, text_value
from .dialects import drop_sql, create_sql, session_zone_sql, cast_text, placeholders, timestamp_literal
from .errors import DatabaseConnectionError, SchemaError, WriteError, QueryError

log = logging.getLogger(__name__)

# one column of one row read back by read_and_report
# renderings holds 'default' and 'calendar' aware datetimes for timestamp columns, 'text' otherwise
ProbeResult = namedtuple('ProbeResult', ['column', 'value', 'renderings'])

# one literal read back by probe_dst_boundary
DstResult = namedtuple('DstResult', ['text', 'value', 'instant', 'in_gap', 'ambiguous'])

class BindResult(namedtuple('BindResult', ['calendar_bound', 'local_string', 'zoned_string', 'reference_zone', 'session_zone'])):
    """The three texts read back by probe_explicit_calendar_bind.
    A timestamp bound with a calendar carries the wall clock of the reference zone, a local string
    has no zone so the session applies its own, and a zoned string carries its offset."""

    def calendar_instant(self):
        return localize(parse_local(self.calendar_bound), self.reference_zone)

    def local_instant(self):
        return localize(parse_local(self.local_string), self.session_zone)

    def zoned_instant(self):
        return parse_zoned(self.zoned_string)

class Probe(object):

    # A class to probe timestamp round trips through a MySQL, Oracle, Postgres or SQLite database

    """Operations as follows, run() calls them in this order with a fresh connection each:
    provision = drop and (re)create the scratch table
    insert_sample = set the session time zone to the default zone and insert one row with a fixed timestamp
    read_and_report = read the row back under another session time zone, render timestamps with the default and reference calendars
    probe_explicit_calendar_bind = bind one instant as a calendar timestamp, a local string and a zoned string, read back as text
    probe_dst_boundary = read literal timestamps around the daylight saving transitions of the reference zone
    """

    def __init__(self, connect_details, default_zone = settings.DEFAULT_ZONE, reference_zone = settings.REFERENCE_ZONE,
            table_name = settings.TABLE_NAME, timeout = settings.TIMEOUT, out = None):

        # default_zone stands in for the client's default time zone - it is only ever changed
        # by default_zone_as() which restores it on exit

        if not connect_details:
            raise RuntimeError("No database connection details supplied")

        # Make sure it's a good table name
        if not isinstance(table_name, str):
            raise TypeError('table_name must be a string')
        else:
            self._table = table_name

        self._connect_details = connect_details
        self._timeout = timeout
        self._out = out # None means sys.stdout at the time of printing

        self.default_zone = get_zone(default_zone)
        self.reference_zone = get_zone(reference_zone)

        self.db_type = Probe.type_from_uri(connect_details).upper()
        self.dialect = dialects.get_dialect(self.db_type)
        driver_flags = {
            'POSTGRESQL': dialects.PSYCOPG2,
            'MYSQL': dialects.MYSQCON,
            'ORACLE': dialects.ORACLEDB,
            'SQLITE': True,
        }
        import_name, package = dialects.DRIVER_PACKAGES[self.db_type]
        if not driver_flags[self.db_type]:
            raise ImportError("The '%s' package is not installed" % package)
        self._dbmodule = importlib.import_module(import_name)
        if self.db_type == 'SQLITE':
            dialects.register_sqlite(self._dbmodule)

    @staticmethod
    def type_from_uri(db_uri):
        db = 'SQLite'
        if db_uri.startswith('postgresql://') or db_uri.startswith('postgres://'):
            db = 'PostgreSQL'
        elif db_uri.startswith('mysql://'):
            db = 'MySQL'
        elif db_uri.startswith('oracle://'):
            db = 'Oracle'
        return db

    @property
    def driver_name(self):
        return self._dbmodule.__name__

    def connect(self):
        'Open a new connection to the database.'
        try:
            if self.db_type == 'POSTGRESQL':
                connection = self._dbmodule.connect(self._connect_details, connect_timeout = self._timeout)
                connection.autocommit = False
            elif self.db_type == 'MYSQL':
                connect_kwargs = {
                    'connection_timeout': self._timeout,
                }
                u = urlsplit(self._connect_details)
                if u.username: connect_kwargs['user'] = u.username
                if u.password: connect_kwargs['password'] = u.password
                if u.port: connect_kwargs['port'] = u.port
                if u.hostname: connect_kwargs['host'] = u.hostname
                database = str(u[2]).replace('/', '')
                if database: connect_kwargs['database'] = database
                connection = self._dbmodule.connect(**connect_kwargs)
                connection.autocommit = False
            elif self.db_type == 'ORACLE':
                u = urlsplit(self._connect_details)
                service = str(u[2]).replace('/', '')
                dsn = '%s:%d/%s' % (u.hostname or 'localhost', u.port or 1521, service) # Easy Connect string
                connect_kwargs = {
                    'user': u.username,
                    'password': u.password,
                    'dsn': dsn,
                    'tcp_connect_timeout': self._timeout,
                }
                connection = self._dbmodule.connect(**connect_kwargs)
            else:
                connect_kwargs = {
                    'detect_types': self._dbmodule.PARSE_DECLTYPES|self._dbmodule.PARSE_COLNAMES,
                    'timeout': self._timeout
                }
                connection = self._dbmodule.connect(self._connect_details, **connect_kwargs)
        except self._dbmodule.Error as err:
            raise DatabaseConnectionError("Could not connect to %s database: %s" % (self.db_type, err), self.db_type) from err
        if not connection:
            raise DatabaseConnectionError("Could not connect to %s database" % self.db_type, self.db_type)
        return connection

    @contextmanager
    def connection(self):
        'A connection for the duration of a with block, closed on exit whatever happens.'
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def default_zone_as(self, zone):
        'Temporarily replace the default zone, the previous one is restored on exit even if an error occurred.'
        previous = self.default_zone
        self.default_zone = get_zone(zone)
        try:
            yield self.default_zone
        finally:
            self.default_zone = previous

    def now(self):
        ' client current time in the default zone '
        return localize(datetime.now(pytz.utc), self.default_zone)

    def run(self, session_zone_offset = None):
        'Run all the probes in order, each on its own connection. Any error aborts the run.'
        self._print('*** %s (%s) ***' % (self.db_type, self.driver_name))
        with self.connection() as conn:
            self.provision(conn)
        with self.connection() as conn:
            self.insert_sample(conn)
        with self.connection() as conn:
            rows = self.read_and_report(conn, session_zone_offset)
        with self.connection() as conn:
            bound = self.probe_explicit_calendar_bind(conn)
        dst = self.probe_dst_boundary()
        return rows, bound, dst

    def provision(self, conn):
        'Drop the scratch table if it exists and create it afresh.'
        cursor = self._cursor(conn)
        try:
            self._execute_norows(cursor, drop_sql(self.dialect, self._table))
            self._execute_norows(cursor, create_sql(self.dialect, self._table))
            conn.commit()
        except self._dbmodule.Error as err:
            raise SchemaError('Cannot provision table %s: %s' % (self._table, err), self.db_type) from err
        finally:
            cursor.close()

    def insert_sample(self, conn, value = None):
        """Insert one row into the scratch table after setting the session time zone to the default zone.
        created_timestamp is the server local time, timestamp_val is the supplied value (a naive datetime
        or ISO string, default settings.SAMPLE_TIMESTAMP) and the remarks record the value and the client
        time both zoned in the default zone. Returns the remarks."""
        if value is None:
            value = settings.SAMPLE_TIMESTAMP
        tsvalue = value if isinstance(value, datetime) else parse_local(value)
        remarks = "Inserted value '%s' using %s at: %s" % (
            format_zoned(localize(tsvalue, self.default_zone)), self.driver_name, format_zoned(self.now()))
        ph = placeholders(self.dialect, 2)
        sql = """INSERT INTO %s
            (created_timestamp, timestamp_val, remarks)
            VALUES (%s, %s, %s)""" % (self._table, self.dialect['localtimestamp'], ph[0], ph[1])
        cursor = self._cursor(conn)
        try:
            self._set_session_zone(cursor, zone_name(self.default_zone))
            self._execute_norows(cursor, sql, [ tsvalue, remarks ])
            conn.commit()
        except self._dbmodule.Error as err:
            raise WriteError('Cannot insert into table %s: %s' % (self._table, err), self.db_type) from err
        finally:
            cursor.close()
        return remarks

    def read_and_report(self, conn, session_zone_offset = None):
        """Set the session time zone (default settings.SESSION_ZONE_OFFSET) and read back all rows.
        Timestamp columns are rendered twice - read in the default zone, and read in the reference zone
        then expressed in the default zone - other columns as plain text. Each row is printed and the
        result is a list of OrderedDicts of column name -> ProbeResult."""
        offset = session_zone_offset or settings.SESSION_ZONE_OFFSET
        sql = """SELECT created_timestamp,
            %s AS created_timestamp_str,
            timestamp_val, %s AS timestamp_val_str,
            remarks,
            %s AS retrieved
            FROM %s""" % (cast_text(self.dialect, 'created_timestamp'), cast_text(self.dialect, 'timestamp_val'),
                cast_text(self.dialect, self.dialect['localtimestamp']), self._table)
        cursor = self._cursor(conn)
        try:
            self._set_session_zone(cursor, offset)
            rows = self._execute_rows(cursor, sql)
            description = cursor.description
        except self._dbmodule.Error as err:
            raise QueryError('Cannot read table %s: %s' % (self._table, err), self.db_type) from err
        finally:
            cursor.close()

        colnames = [ text_value(d[0]).lower() for d in description ] # Oracle returns upper case names
        results = []
        for rownum, row in enumerate(rows, 1):
            result = OrderedDict()
            for desc, colname, value in zip(description, colnames, row):
                result[colname] = self._probe_column(colname, desc, value)
            results.append(result)
            self._print_row(rownum, result)
        return results

    def probe_explicit_calendar_bind(self, conn, reference_zone = None, instant = None, session_zone = None):
        """Select three parameters holding the same instant (default now) and read them back as text:
        a timestamp bound with an explicit reference zone calendar, the reference zone local time as an
        ISO string, and the zoned ISO string. session_zone (default the default zone) is set as the
        session time zone before the select and is the zone the local string is taken to be in.
        Returns a BindResult."""
        calendar = get_zone(reference_zone) if reference_zone is not None else self.reference_zone
        session = get_zone(session_zone) if session_zone is not None else self.default_zone
        if instant is None:
            instant = datetime.now(pytz.utc)
        elif instant.tzinfo is None:
            raise ValueError('The instant must be a timezone aware datetime')
        zoned = localize(instant, calendar)
        params = [ to_calendar(instant, calendar), format_local(zoned.replace(tzinfo=None)), format_zoned(zoned) ]
        sql = 'SELECT %s%s' % (', '.join(placeholders(self.dialect, 3)), self.dialect['dual'])
        cursor = self._cursor(conn)
        try:
            if not self._set_session_zone(cursor, zone_name(session)):
                session = self.default_zone # no session zone so the local string falls back to the client's
            if self.db_type == 'ORACLE': # a plain datetime binds as DATE which has no fractional seconds
                cursor.setinputsizes(self._dbmodule.TIMESTAMP, None, None)
            rows = self._execute_rows(cursor, sql, params)
        except self._dbmodule.Error as err:
            raise QueryError('Cannot select bound parameters: %s' % err, self.db_type) from err
        finally:
            cursor.close()

        texts = [ text_value(v) for v in rows[0] ]
        result = BindResult(texts[0], texts[1], texts[2], calendar, session)
        self._print("=== Test binding a timestamp with a %s calendar ===" % zone_name(calendar))
        for text in texts:
            self._print(text)
        return result

    def probe_dst_boundary(self, reference_zone = None, literals = None):
        """With the default zone temporarily set to the reference zone (which should observe daylight
        saving), select literal timestamps (default settings.DST_TIMESTAMPS) on a new connection and
        report the instant each maps to in that zone. Wall clocks in a spring-forward gap are normalized
        forward and flagged in_gap, repeated wall clocks at fall-back are read as standard time and
        flagged ambiguous. The default zone is restored afterwards even if the query fails."""
        zone = reference_zone if reference_zone is not None else self.reference_zone
        literals = literals or settings.DST_TIMESTAMPS
        columns = [ timestamp_literal(self.dialect, value, 'ts%d' % i) for i, value in enumerate(literals, 1) ]
        sql = 'SELECT %s%s' % (', '.join(columns), self.dialect['dual'])
        results = []
        with self.default_zone_as(zone):
            with self.connection() as conn:
                cursor = self._cursor(conn)
                try:
                    rows = self._execute_rows(cursor, sql)
                except self._dbmodule.Error as err:
                    raise QueryError('Cannot select timestamp literals: %s' % err, self.db_type) from err
                finally:
                    cursor.close()
            self._print('=== Test default timezone observing daylight saving ===')
            for value in rows[0]:
                naive = value if isinstance(value, datetime) else parse_local(value)
                result = DstResult(text_value(value), value, localize(naive, self.default_zone),
                    in_gap(naive, self.default_zone), is_ambiguous(naive, self.default_zone))
                results.append(result)
                self._print('%s is converted to Timestamp of time instant: %s' % (result.text, format_zoned(result.instant)))
        return results

    def _probe_column(self, colname, desc, value):
        if self._is_timestamp(desc, value):
            renderings = OrderedDict([
                ('default', localize(value, self.default_zone)),
                ('calendar', at_calendar(value, self.reference_zone, self.default_zone)),
            ])
        else:
            renderings = OrderedDict([ ('text', text_value(value)) ])
        return ProbeResult(colname, value, renderings)

    def _is_timestamp(self, desc, value):
        if isinstance(value, datetime):
            return True
        if value is None: # fall back on the column type code (none in SQLite)
            dbtype = getattr(self._dbmodule, 'DATETIME', None)
            return dbtype is not None and desc[1] is not None and desc[1] == dbtype
        return False

    def _print_row(self, rownum, result):
        label = '(using %s Cal): ' % zone_name(self.reference_zone).split('/')[-1]
        lines = []
        for colname, probed in result.items():
            if 'calendar' in probed.renderings:
                lines.append("%s'%s'" % ('{:<25}'.format(colname + ':'), probed.renderings['default']))
                lines.append("%s'%s'" % ('{:>25}'.format(label), probed.renderings['calendar']))
            else:
                lines.append("%s'%s'" % ('{:<25}'.format(colname + ':'), probed.renderings['text']))
        self._print('[Time: %s] Row #%d:\n%s' % (format_zoned(self.now()), rownum, '\n'.join(lines)))

    def _print(self, text):
        print(text, file=self._out or sys.stdout)

    def _cursor(self, conn):
        if self.db_type == 'MYSQL':
            return conn.cursor(buffered=True)
        return conn.cursor()

    def _set_session_zone(self, cursor, zone):
        sql = session_zone_sql(self.dialect, zone)
        if sql is None:
            log.info('%s has no session time zone, %s not set', self.db_type, zone)
            return False
        self._execute_norows(cursor, sql)
        return True

    def _execute_norows(self, cursor, sql, *args):
        ' execute an SQL statement returning no data and no commit either '
        log.debug('%s: %s %s', self.db_type, sql, args[0] if args else '')
        cursor.execute(sql, *args)

    def _execute_rows(self, cursor, sql, *args):
        ' execute an SQl statement and return any result (no commit) '
        self._execute_norows(cursor, sql, *args)
        return cursor.fetchall() # result is a list of tuples (or empty list)
