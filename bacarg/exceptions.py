#
# Copyright (C) 2024 The bacarg developers
#
# This file is part of bacarg.
#
# bacarg is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# bacarg is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with bacarg.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Exceptions defined in bacarg.
"""


class BacargException(Exception):
    """
    Superclass of all exceptions thrown.
    """


class InvariantError(BacargException):
    """
    A structural invariant of a conversion graph does not hold. This is
    always a programming error and the graph must not be used further.
    """


class ConfigurationError(BacargException, ValueError):
    """
    A model or graph was set up with inconsistent or missing parameters.
    """


class FileFormatError(BacargException):
    """
    Some file format error was detected.
    """
