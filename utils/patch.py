# utils/patch.py
"""Partial-update value types: a field left as UNSET is not touched."""


class _Unset:
    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET = _Unset()


class Patch:
    def changes(self):
        return {k: v for k, v in vars(self).items() if v is not UNSET}

    def is_empty(self):
        return not self.changes()

    def is_set(self, field):
        return getattr(self, field) is not UNSET
