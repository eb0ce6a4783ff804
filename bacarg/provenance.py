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
Common provenance methods used to determine the state and versions
of various dependencies and the OS.
"""
import importlib
import json
import logging

import newick
import numpy
import tskit

from bacarg import core

logger = logging.getLogger(__name__)


def get_provenance_dict(parameters=None):
    """
    Returns a dictionary encoding an execution of bacarg conforming to the
    tskit provenance schema.
    """
    document = {
        "schema_version": "1.0.0",
        "software": {"name": "bacarg", "version": core.__version__},
        "parameters": parameters,
        "environment": get_environment(),
    }
    return document


def _get_environment():
    libraries = {
        "numpy": {"version": numpy.__version__},
        "newick": {"version": getattr(newick, "__version__", "unknown")},
    }
    return tskit.provenance.get_environment(extra_libs=libraries)


_environment = None


def get_environment():
    """
    Returns a dictionary describing the environment in which bacarg
    is currently running.
    """
    # Everything here is fixed so we cache it
    global _environment
    if _environment is None:
        _environment = _get_environment()
    return _environment


class ProvenanceEncoderDecoder(json.JSONEncoder):
    """
    Extension of the `json` encoder that serializes model objects by calling
    an `asdict` method on the object that should provide the arguments
    needed to exactly recreate it. Special cases numpy arrays and scalars.
    """

    def default(self, obj):
        if isinstance(obj, numpy.ndarray):
            # Arrays here are small parameter vectors, so keep them readable.
            return {"__ndarray__": obj.tolist(), "dtype": obj.dtype.str}
        elif isinstance(obj, numpy.number):
            return {
                "__npgeneric__": str(obj),
                "dtype": obj.dtype.str,
            }
        try:
            ret = dict(obj.asdict())
        except AttributeError:
            raise TypeError(
                f"Object of type {obj.__class__.__name__} "
                f"is not JSON serializable. Please provide an `asdict` method "
                f"that returns the object's constructor arguments."
            )
        cls = obj.__class__
        ret["__class__"] = f"{cls.__module__}.{cls.__name__}"
        return ret

    @staticmethod
    def decode(s):
        def hook(obj):
            if "__ndarray__" in obj:
                return numpy.asarray(obj["__ndarray__"], dtype=obj["dtype"])
            elif "__npgeneric__" in obj:
                return numpy.array([obj["__npgeneric__"]]).astype(obj["dtype"])[0]
            elif "__class__" in obj:
                module, cls = obj["__class__"].rsplit(".", 1)
                module = importlib.import_module(module)
                del obj["__class__"]
                return getattr(module, cls)(**obj)
            return obj

        return json.JSONDecoder(object_hook=hook).decode(s)


def json_encode_provenance(provenance_dict):
    """
    Return a JSON representation of the provenance
    """
    prov = ProvenanceEncoderDecoder().encode(provenance_dict)
    logger.debug("Encoded provenance record of %d bytes", len(prov))
    return prov


def parse_provenance(provenance):
    """
    Convert the specified tskit provenance row to a tuple of the command
    used and the dictionary of parameters passed to it.
    """
    ret = ProvenanceEncoderDecoder.decode(provenance.record)
    if ret["software"]["name"] != "bacarg":
        raise ValueError(
            f"Only bacarg provenances can be parsed,"
            f' found {ret["software"]["name"]}'
        )
    parameters = dict(ret["parameters"])
    command = parameters.pop("command")
    return command, parameters
