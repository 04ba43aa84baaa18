"""Tests for resource capabilities module."""

import base64
import json

import pytest

from mcplite.resources import Resource, ResourceTemplate, UriTemplate


class TestUriTemplate:
    """Test UriTemplate class."""

    def test_variables(self):
        """Test placeholders are collected in order."""
        template = UriTemplate("files://{owner}/{name}")
        assert template.variables == ["owner", "name"]

    def test_match_single_segment(self):
        """Test a placeholder captures one path segment."""
        template = UriTemplate("users://{userID}/profile")
        assert template.match("users://7/profile") == {"userID": "7"}

    def test_no_match_without_segment(self):
        """Test an empty placeholder does not match."""
        template = UriTemplate("users://{userID}/profile")
        assert template.match("users://profile") is None
        assert template.match("users:///profile") is None

    def test_no_match_across_segments(self):
        """Test a placeholder never spans a slash."""
        template = UriTemplate("users://{userID}/profile")
        assert template.match("users://7/8/profile") is None

    def test_no_partial_match(self):
        """Test the whole URI has to match."""
        template = UriTemplate("users://{userID}/profile")
        assert template.match("users://7/profile/extra") is None
        assert template.match("xusers://7/profile") is None

    def test_literal_parts_are_not_patterns(self):
        """Test regex characters in the literal parts match only themselves."""
        template = UriTemplate("data://v1.0/{key}")
        assert template.match("data://v1.0/a") == {"key": "a"}
        assert template.match("data://v1x0/a") is None

    def test_match_decodes_values(self):
        """Test percent-encoded values are decoded."""
        template = UriTemplate("notes://{title}")
        assert template.match("notes://hello%20world") == {"title": "hello world"}

    def test_expand(self):
        """Test expanding a template encodes each value as one segment."""
        template = UriTemplate("notes://{folder}/{title}")
        uri = template.expand(folder="a/b", title="x y")
        assert uri == "notes://a%2Fb/x%20y"
        assert template.match(uri) == {"folder": "a/b", "title": "x y"}

    def test_expand_missing_value(self):
        """Test expanding without every value fails."""
        with pytest.raises(ValueError):
            UriTemplate("users://{userID}/profile").expand()

    def test_invalid_placeholders(self):
        """Test bad placeholder names are rejected."""
        with pytest.raises(ValueError):
            UriTemplate("users://{user-id}")
        with pytest.raises(ValueError):
            UriTemplate("pairs://{a}/{a}")

    def test_uri_placeholder_is_reserved(self):
        """Test a placeholder cannot take the name of the handler's uri argument."""
        with pytest.raises(ValueError, match="reserved"):
            UriTemplate("files://{uri}")
        assert UriTemplate("files://{uri_path}").variables == ["uri_path"]

    def test_is_template(self):
        """Test literal URIs are told apart from templates."""
        assert UriTemplate.is_template("users://{userID}/profile")
        assert not UriTemplate.is_template("users://all")


class TestResource:
    """Test Resource class."""

    def test_to_dict(self):
        """Test resource descriptor."""
        def users(uri):
            """All users."""
            return []

        resource = Resource(users, "users://all", mime_type="application/json", title="Users")
        assert resource.to_dict() == {
            "uri": "users://all",
            "name": "users",
            "title": "Users",
            "description": "All users.",
            "mimeType": "application/json"
        }

    @pytest.mark.asyncio
    async def test_read_text(self):
        """Test string results are returned as text contents."""
        resource = Resource(lambda uri: "hello", "notes://greeting", name="greeting")
        result = await resource.read("notes://greeting")
        assert result == {"contents": [
            {"uri": "notes://greeting", "text": "hello", "mimeType": "text/plain"}
        ]}

    @pytest.mark.asyncio
    async def test_read_json(self):
        """Test JSON resources serialize structured results."""
        resource = Resource(lambda uri: [{"id": 1}], "users://all", name="users",
                            mime_type="application/json")
        result = await resource.read("users://all")
        assert json.loads(result["contents"][0]["text"]) == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_read_bytes(self):
        """Test bytes become a base64 blob."""
        resource = Resource(lambda uri: b"\x00\x01", "bin://x", name="bin",
                            mime_type="application/octet-stream")
        entry = (await resource.read("bin://x"))["contents"][0]
        assert base64.b64decode(entry["blob"]) == b"\x00\x01"
        assert "text" not in entry

    @pytest.mark.asyncio
    async def test_read_async_handler(self):
        """Test coroutine handlers are awaited."""
        async def load(uri):
            return "async"

        result = await Resource(load, "notes://a").read("notes://a")
        assert result["contents"][0]["text"] == "async"

    @pytest.mark.asyncio
    async def test_read_entries_pass_through(self):
        """Test complete read entries are returned unchanged."""
        entries = [{"uri": "notes://a", "text": "one"}, {"uri": "notes://b", "text": "two"}]
        result = await Resource(lambda uri: entries, "notes://all", name="notes").read("notes://all")
        assert result == {"contents": entries}


class TestResourceTemplate:
    """Test ResourceTemplate class."""

    def test_to_dict(self):
        """Test template descriptor uses uriTemplate."""
        template = ResourceTemplate(lambda uri, userID: {}, "users://{userID}/profile",
                                    name="user-details", mime_type="application/json")
        descriptor = template.to_dict()
        assert descriptor["uriTemplate"] == "users://{userID}/profile"
        assert "uri" not in descriptor

    @pytest.mark.asyncio
    async def test_read_passes_parameters(self):
        """Test extracted values are passed to the handler as keywords."""
        def profile(uri, userID):
            return {"uri": uri, "userID": userID}

        template = ResourceTemplate(profile, "users://{userID}/profile", name="profile",
                                    mime_type="application/json")
        params = template.match("users://7/profile")
        result = await template.read("users://7/profile", params)
        entry = result["contents"][0]
        assert entry["uri"] == "users://7/profile"
        assert json.loads(entry["text"]) == {"uri": "users://7/profile", "userID": "7"}
