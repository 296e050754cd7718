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
from .tsprobe import Probe, ProbeResult, BindResult, DstResult
from .errors import ProbeError, DatabaseConnectionError, SchemaError, WriteError, QueryError
