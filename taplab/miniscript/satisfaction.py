"""
Miniscript satisfaction.

This module contains logic for "signing for" a Miniscript leaf (constructing a valid
witness that meets the conditions set by the Script). The actual signatures, preimages
and timelock answers are queried from a taplab.satisfier.Satisfier.
This is focused on non-malleable satisfaction. We take shortcuts to not care about
non-canonical (dis)satisfactions.
"""


def add_optional(a, b):
    """Add two witnesses that may be None together."""
    if a is None or b is None:
        return None
    return a + b


class LeafSatisfier:
    """Binds a Satisfier to the leaf being satisfied.

    Signature lookups are memoized: the satisfaction algorithm may query the same key
    several times while comparing branches.
    """

    def __init__(self, satisfier, leaf_hash):
        assert isinstance(leaf_hash, bytes) and len(leaf_hash) == 32
        self.satisfier = satisfier
        self.leaf_hash = leaf_hash
        self._signatures = {}

    def signature(self, pubkey):
        if pubkey not in self._signatures:
            self._signatures[pubkey] = self.satisfier.leaf_signature(
                pubkey, self.leaf_hash
            )
        return self._signatures[pubkey]

    def preimage(self, image):
        return self.satisfier.preimage(image)

    def check_older(self, value):
        return self.satisfier.check_relative(value)

    def check_after(self, value):
        return self.satisfier.check_absolute(value)


class Satisfaction:
    """All information about a satisfaction."""

    def __init__(self, witness, has_sig=False):
        assert isinstance(witness, list) or witness is None
        self.witness = witness
        self.has_sig = has_sig

    def __repr__(self):
        if self.witness is None:
            return "Satisfaction(unavailable)"
        return f"Satisfaction({[w.hex() for w in self.witness]}, has_sig={self.has_sig})"

    def __add__(self, other):
        """Concatenate two satisfactions together."""
        witness = add_optional(self.witness, other.witness)
        has_sig = self.has_sig or other.has_sig
        return Satisfaction(witness, has_sig)

    def __or__(self, other):
        """Choose between two (dis)satisfactions."""
        assert isinstance(other, Satisfaction)

        # If one isn't available, return the other one.
        if self.witness is None:
            return other
        if other.witness is None:
            return self

        # > If instead exactly one does not have the HASSIG marker, return that solution
        # > because of reason 2.
        if self.has_sig and not other.has_sig:
            return other
        if not self.has_sig and other.has_sig:
            return self

        # > Otherwise, all not-DONTUSE options are valid, so return the smallest one (in
        # > terms of witness size).
        if self.size() > other.size():
            return other

        return self

    def unavailable():
        return Satisfaction(witness=None)

    def is_unavailable(self):
        return self.witness is None

    def size(self):
        return len(self.witness) + sum(len(elem) for elem in self.witness)

    def from_concat(leaf_sat, sub_a, sub_b, disjunction=False):
        """Get the satisfaction for a Miniscript whose Script corresponds to a
        concatenation of two subscripts A and B.

        :param sub_a: The sub-fragment A.
        :param sub_b: The sub-fragment B.
        :param disjunction: Whether this fragment has an 'or()' semantic.
        """
        if disjunction:
            return (sub_b.dissatisfaction() + sub_a.satisfaction(leaf_sat)) | (
                sub_b.satisfaction(leaf_sat) + sub_a.dissatisfaction()
            )
        return sub_b.satisfaction(leaf_sat) + sub_a.satisfaction(leaf_sat)

    def from_or_uneven(leaf_sat, sub_a, sub_b):
        """Get the satisfaction for a Miniscript which unconditionally executes a first
        sub A and only executes B if A was dissatisfied.
        """
        return sub_a.satisfaction(leaf_sat) | (
            sub_b.satisfaction(leaf_sat) + sub_a.dissatisfaction()
        )

    def from_thresh(leaf_sat, k, subs):
        """Get the satisfaction for a Miniscript which satisfies k of the given subs,
        and dissatisfies all the others.
        """
        # Pick the k sub-fragments to satisfy, prefering (in order):
        # 1. Fragments that don't require a signature to be satisfied
        # 2. Fragments whose satisfaction's size is smaller
        # Record the unavailable (in either way) ones as we go.
        arbitrage, unsatisfiable, undissatisfiable = [], [], []
        for sub in subs:
            sat, dissat = sub.satisfaction(leaf_sat), sub.dissatisfaction()
            if sat.witness is None:
                unsatisfiable.append(sub)
            elif dissat.witness is None:
                undissatisfiable.append(sub)
            else:
                arbitrage.append(
                    (int(sat.has_sig), sat.size() - dissat.size(), sub)
                )

        if len(unsatisfiable) > len(subs) - k or len(undissatisfiable) > k:
            return Satisfaction.unavailable()

        arbitrage = sorted(arbitrage, key=lambda x: x[:2])
        optimal_sat = undissatisfiable + [a[2] for a in arbitrage] + unsatisfiable
        to_satisfy = set(id(sub) for sub in optimal_sat[:k])
        # The first sub is executed first, so its witness must be on top.
        return sum(
            [
                sub.satisfaction(leaf_sat)
                if id(sub) in to_satisfy
                else sub.dissatisfaction()
                for sub in subs[::-1]
            ],
            start=Satisfaction(witness=[]),
        )
