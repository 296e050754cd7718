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
# usage: python -m tsprobe [connect_string ...]
# with no arguments each of settings.CONNECT_STRINGS is probed in turn
import logging
import os
import sys

from . import settings
from .tsprobe import Probe

def main(argv = None):
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=os.environ.get('TSPROBE_LOG_LEVEL', 'WARNING').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    connect_strings = argv or settings.CONNECT_STRINGS
    for connect_s in connect_strings:
        probe = Probe(connect_s)
        print('Probing connection:', probe.db_type, 'default zone', settings.DEFAULT_ZONE,
            'reference zone', settings.REFERENCE_ZONE)
        probe.run() # any error aborts the whole run
    return 0

if __name__ == '__main__':
    sys.exit(main())
