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
Nucleotide alignments for the loci of a conversion graph.
"""
import logging

import numpy as np

from bacarg import exceptions

logger = logging.getLogger(__name__)

# Any character not in this map (N, gaps, IUPAC ambiguity codes) is missing.
_STATE_MAP = {"A": 0, "C": 1, "G": 2, "T": 3, "U": 3}
MISSING = -1


def encode(sequence):
    """
    Returns the integer state array for the specified nucleotide string.
    """
    return np.array(
        [_STATE_MAP.get(c, MISSING) for c in sequence.upper()], dtype=np.int8
    )


class Alignment:
    """
    A set of aligned nucleotide sequences for one locus.

    :param list taxa: The taxon names, matching the leaf labels of the
        conversion graph.
    :param list sequences: The aligned sequences as strings, in the same
        order as ``taxa``.
    """

    def __init__(self, taxa, sequences):
        if len(taxa) != len(sequences):
            raise exceptions.ConfigurationError(
                "Must have the same number of taxa and sequences"
            )
        if len(set(taxa)) != len(taxa):
            raise exceptions.ConfigurationError("Duplicate taxon names in alignment")
        if len(taxa) == 0:
            raise exceptions.ConfigurationError("Alignment must not be empty")
        lengths = {len(seq) for seq in sequences}
        if len(lengths) != 1:
            raise exceptions.ConfigurationError(
                f"Sequences are not aligned: found lengths {sorted(lengths)}"
            )
        self.taxa = list(taxa)
        self.states = np.vstack([encode(seq) for seq in sequences])
        self.states.flags.writeable = False

    @property
    def site_count(self):
        return self.states.shape[1]

    @property
    def num_taxa(self):
        return len(self.taxa)

    def index(self, taxon):
        return self.taxa.index(taxon)

    def __repr__(self):
        return f"Alignment(num_taxa={self.num_taxa}, site_count={self.site_count})"


def parse_fasta(source):
    """
    Parses FASTA text from the specified file-like object and returns the
    lists of labels and sequences in file order.
    """
    labels = []
    chunks = []
    for lineno, line in enumerate(source, start=1):
        line = line.strip()
        if len(line) == 0:
            continue
        if line.startswith(">"):
            label = line[1:].strip().split()[0] if len(line) > 1 else ""
            if len(label) == 0:
                raise exceptions.FileFormatError(f"Empty FASTA label at line {lineno}")
            labels.append(label)
            chunks.append([])
        else:
            if len(labels) == 0:
                raise exceptions.FileFormatError(
                    "FASTA content missing label before sequence data"
                )
            chunks[-1].append(line)
    return labels, ["".join(chunk) for chunk in chunks]


def read_fasta(path):
    """
    Reads the FASTA file at the specified path and returns an
    :class:`.Alignment`.
    """
    with open(path) as f:
        labels, sequences = parse_fasta(f)
    logger.info("Read %d sequences from %s", len(labels), path)
    return Alignment(labels, sequences)
