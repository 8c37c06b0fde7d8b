"""Display names as published in discovery documents.

A display name is either a plain string or a mapping from locale tag to
string. Both are resolved to one string with :py:meth:`DisplayName.resolve`.
"""
from typing import Optional

from vpnportal.defaults import DEFAULT_PREFERRED_LOCALE


class DisplayName(object):

    def resolve(self, locale: Optional[str] = DEFAULT_PREFERRED_LOCALE) -> str:
        raise NotImplementedError()

    def to_json_value(self):
        raise NotImplementedError()

    @staticmethod
    def from_value(value):
        """
        Build a DisplayName from the value found in a discovery document.

        :param value: A string or a dictionary mapping locale tag to string
        :return: A PlainDisplayName or a LocalizedDisplayName instance
        """
        if isinstance(value, str):
            return PlainDisplayName(value)
        elif isinstance(value, dict) and value:
            for _tag, _name in value.items():
                if not isinstance(_tag, str) or not isinstance(_name, str):
                    raise ValueError(f"Bad localized display name: {value}")
            return LocalizedDisplayName(value)

        raise ValueError(f"Bad display name: {value}")


class PlainDisplayName(DisplayName):

    def __init__(self, name: str):
        self.name = name

    def resolve(self, locale: Optional[str] = DEFAULT_PREFERRED_LOCALE) -> str:
        return self.name

    def to_json_value(self):
        return self.name

    def __eq__(self, other):
        return isinstance(other, PlainDisplayName) and other.name == self.name

    def __repr__(self):
        return f"PlainDisplayName({self.name!r})"


class LocalizedDisplayName(DisplayName):

    def __init__(self, names: dict):
        self.names = dict(names)

    def resolve(self, locale: Optional[str] = DEFAULT_PREFERRED_LOCALE) -> str:
        # Falls back to the first tag in document order so repeated calls agree
        if locale in self.names:
            return self.names[locale]
        return next(iter(self.names.values()))

    def to_json_value(self):
        return dict(self.names)

    def __eq__(self, other):
        return isinstance(other, LocalizedDisplayName) and other.names == self.names

    def __repr__(self):
        return f"LocalizedDisplayName({self.names!r})"


def sort_key(locale: Optional[str] = DEFAULT_PREFERRED_LOCALE):
    """Sort key function ordering entries case-insensitively by resolved display name."""

    def _key(entry):
        return entry.display_name.resolve(locale).lower()

    return _key
