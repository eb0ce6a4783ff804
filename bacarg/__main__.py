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
Entry point for running bacarg as a module.
"""
from bacarg import cli

if __name__ == "__main__":
    cli.bacarg_main()
