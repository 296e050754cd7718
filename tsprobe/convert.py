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
import re

import pytz

DENC = 'utf-8' # default encoding for text values
ISO_DATETIME_REGEX = re.compile(r'^(\d{4}-\d{2}-\d{2})[\sT](\d{2}:\d{2}:\d{2}(\.\d{1,6})?)$')
ISO_ZONED_REGEX = re.compile(r'^(\d{4}-\d{2}-\d{2}[\sT]\d{2}:\d{2}:\d{2}(\.\d{1,6})?)([+-]\d{2}:\d{2}|Z)(\[([^\]]+)\])?$')
OFFSET_REGEX = re.compile(r'^([+-])(\d{2}):(\d{2})$')

def is_offset(zone):
    ' True if the zone is a fixed UTC offset like +05:00 rather than a named zone '
    return bool(OFFSET_REGEX.match(zone))

def get_zone(zone): # zone is a zone name, a +hh:mm offset or already a tzinfo
    if isinstance(zone, str):
        matched = OFFSET_REGEX.match(zone)
        if matched:
            sign, hours, minutes = matched.groups()
            offset = int(hours) * 60 + int(minutes)
            return pytz.FixedOffset(-offset if sign == '-' else offset)
        return pytz.timezone(zone)
    return zone

def zone_name(zone):
    zone = get_zone(zone)
    name = getattr(zone, 'zone', None)
    if name:
        return name
    offset = zone.utcoffset(None) # fixed offsets only
    minutes = int(offset.total_seconds() // 60)
    sign = '-' if minutes < 0 else '+'
    return '%s%02d:%02d' % (sign, abs(minutes) // 60, abs(minutes) % 60)

def localize(naive, zone, strict = False):
    """Attach a zone to a wall clock value.

    The default is lenient, like a java.util.Calendar: a wall clock that falls in a spring-forward gap
    is read with the standard (pre-transition) offset and then normalized, so 02:01 becomes 03:01 DST,
    and a wall clock repeated at fall-back is read as standard time. If strict is True pytz raises
    NonExistentTimeError or AmbiguousTimeError instead."""
    if naive is None: return None
    zone = get_zone(zone)
    if naive.tzinfo is not None:
        return zone.normalize(naive.astimezone(zone)) if hasattr(zone, 'normalize') else naive.astimezone(zone)
    if not hasattr(zone, 'localize'): # not a pytz zone
        return naive.replace(tzinfo=zone)
    if strict:
        return zone.localize(naive, is_dst=None)
    return zone.normalize(zone.localize(naive, is_dst=False))

def in_gap(naive, zone):
    ' True if the wall clock does not exist in the zone (spring-forward gap) '
    zone = get_zone(zone)
    if not hasattr(zone, 'localize'): # a datetime.timezone has fixed offset, no gaps
        return False
    try:
        zone.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError:
        return True
    except pytz.AmbiguousTimeError:
        return False
    return False

def is_ambiguous(naive, zone):
    ' True if the wall clock occurs twice in the zone (fall-back overlap) '
    zone = get_zone(zone)
    if not hasattr(zone, 'localize'):
        return False
    try:
        zone.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        return True
    except pytz.NonExistentTimeError:
        return False
    return False

def at_calendar(naive, calendar_zone, default_zone):
    """Read a stored wall clock value using an explicit calendar, as JDBC getTimestamp(i, cal) does.
    The result is the instant that wall clock denotes in calendar_zone, expressed in default_zone."""
    instant = localize(naive, calendar_zone)
    return localize(instant, default_zone) if instant is not None else None

def to_calendar(instant, calendar_zone):
    ' naive wall clock of an aware instant in an explicit calendar, as bound by JDBC setTimestamp(i, ts, cal) '
    return localize(instant, calendar_zone).replace(tzinfo=None)

def format_zoned(aware): # ISO format plus bracketed zone name e.g. 2021-03-14T02:01:01+08:00[Asia/Hong_Kong]
    if aware is None: return None
    name = getattr(aware.tzinfo, 'zone', None)
    return aware.isoformat('T') + ('[%s]' % name if name else '')

def format_local(naive): # ISO format with 'T' separator and no zone
    return naive.isoformat('T') if naive is not None else None

def parse_local(val): # ISO datetime text (or bytes) with ' ' or 'T' separator as naive datetime
    if val is None: return None
    if isinstance(val, (bytes, bytearray)):
        val = val.decode(encoding=DENC)
    matched = ISO_DATETIME_REGEX.match(val.strip())
    if not matched:
        raise ValueError('Not an ISO format datetime: %s' % val)
    year, month, day = map(int, matched.group(1).split('-'))
    timepart_full = matched.group(2).split('.')
    hours, minutes, seconds = map(int, timepart_full[0].split(':'))
    if len(timepart_full) == 2:
        microseconds = int('{:0<6.6}'.format(timepart_full[1])) # zero pad to length 6
    else:
        microseconds = 0
    return datetime(year, month, day, hours, minutes, seconds, microseconds)

def parse_zoned(val): # ISO datetime with offset and optional bracketed zone name as aware datetime
    if val is None: return None
    matched = ISO_ZONED_REGEX.match(val.strip())
    if not matched:
        raise ValueError('Not an ISO format zoned datetime: %s' % val)
    naive = parse_local(matched.group(1))
    offset = '+00:00' if matched.group(3) == 'Z' else matched.group(3)
    aware = localize(naive, get_zone(offset), strict=True)
    if matched.group(5):
        aware = localize(aware, matched.group(5))
    return aware

def convert_isodtime(val): # sqlite converter - stored ISO datetime (bytes) as datetime object
    return parse_local(val) if val is not None else None

def text_value(val): # the value as a driver would render it with getString()
    if val is None: return None
    if isinstance(val, datetime):
        return val.isoformat(' ')
    if isinstance(val, (bytes, bytearray)):
        return val.decode(encoding=DENC)
    return str(val)

def nquote(text): # quote nullable/literal
    """ Quote text as a literal; or, if the argument is null, return NULL.
    Embedded single-quotes and backslashes are properly doubled. """
    if text is None:
        return 'NULL'
    if '\\' in text:
        text = text.replace('\\', '\\\\')
    if "'" in text:
        text = text.replace("'", "''")
    return "'%s'" % text
