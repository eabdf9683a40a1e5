"""
Program policies
================

A small policy language (keys, sha256 preimages, timelocks, and/or/thresh) compiled to
a compact program. Outputs commit to the program's commitment merkle root (CMR) in a
single Taproot leaf of version 0xbe, under an unspendable internal key. Spending
reveals the program, the witness values it consumes, the CMR and the control block.
"""

from .policy import PROGRAM_LEAF_VERSION, Policy
