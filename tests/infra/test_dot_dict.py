"""
Tests for DotDict.
"""

import pytest

from e2einfra.dot_dict import DotDict


@pytest.mark.unit
class TestDotDict:
    def test_attribute_and_item_access(self):
        d = DotDict(api_endpoint="https://api", retry={"attempts": 3})
        assert d.api_endpoint == "https://api"
        assert d["retry"].attempts == 3
        assert d["missing"] is None

    def test_nested_lists_converted(self):
        d = DotDict(hooks=[{"match": "Droplet"}, "plain"])
        assert d.hooks[0].match == "Droplet"
        assert d.hooks[1] == "plain"

    def test_reserved_keys_rejected(self):
        with pytest.raises(ValueError, match="reserved"):
            DotDict(get=1)

    def test_dotted_path_lookup(self):
        d = DotDict(retry={"attempts": 3, "policy": {"deadline": 10}})
        assert d.has("retry.policy.deadline")
        assert not d.has("retry.policy.missing")
        assert not d.has("")
        assert d.get("retry.attempts") == 3
        assert d.get("retry.nope", "dflt") == "dflt"
        assert d.get("retry.attempts.deeper") is None

    def test_to_dict_is_recursive(self):
        d = DotDict(a={"b": {"c": 1}}, items=[{"x": 1}])
        assert d.to_dict() == {"a": {"b": {"c": 1}}, "items": [{"x": 1}]}

    def test_setitem_replaces(self):
        d = DotDict(a=1)
        d["a"] = {"b": 2}
        assert d.a.b == 2
        assert len(d) == 1
        assert "a" in d

    def test_clear(self):
        d = DotDict(a=1, b=2)
        d.clear()
        assert len(d) == 0
        assert list(d.keys()) == []

    def test_repr(self):
        assert repr(DotDict(a=1)) == "DotDict({'a': 1})"
