"""Unit tests for the Qualys group/tag clients.

No network access: requests.request is patched.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from asset_group_sync.remote_client import (
    GroupApiClient,
    TagApiClient,
    build_client,
    validate_action,
)

GROUP_LIST_XML = """<ASSET_GROUP_LIST_OUTPUT><RESPONSE><ASSET_GROUP_LIST>
<ASSET_GROUP><ID>4471</ID><TITLE><![CDATA[Platform Team]]></TITLE></ASSET_GROUP>
</ASSET_GROUP_LIST></RESPONSE></ASSET_GROUP_LIST_OUTPUT>"""

GROUP_LIST_EMPTY_XML = "<ASSET_GROUP_LIST_OUTPUT><RESPONSE></RESPONSE></ASSET_GROUP_LIST_OUTPUT>"

TAG_SEARCH_XML = """<ServiceResponse><responseCode>SUCCESS</responseCode><count>1</count>
<data><Tag><id>9001</id><name>Platform Team</name></Tag></data></ServiceResponse>"""

TAG_SEARCH_EMPTY_XML = "<ServiceResponse><responseCode>SUCCESS</responseCode><count>0</count></ServiceResponse>"

PATCH_TARGET = "asset_group_sync.remote_client.requests.request"


def _make_resp(status: int = 200, text: str = "") -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.text = text
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} Error", response=r)
    return r


class TestValidateAction:
    @pytest.mark.parametrize("action", ["add", "remove"])
    def test_valid(self, action):
        validate_action(action)

    @pytest.mark.parametrize("action", ["ADD", "delete", ""])
    def test_invalid_raises(self, action):
        with pytest.raises(ValueError, match="action must be 'add' or 'remove'"):
            validate_action(action)


class TestBuildClient:
    def test_group(self):
        assert isinstance(build_client("group", "u", "p"), GroupApiClient)

    def test_tag(self):
        client = build_client("tag", "u", "p", base_url="https://qualysapi.example.com/")
        assert isinstance(client, TagApiClient)
        assert client.base_url == "https://qualysapi.example.com"

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_client("ldap", "u", "p")


class TestGroupApiClient:
    def setup_method(self):
        self.client = GroupApiClient("user", "secret", base_url="https://q.example.com", timeout=5)

    @patch(PATCH_TARGET)
    def test_lookup_found(self, mock_request):
        mock_request.return_value = _make_resp(text=GROUP_LIST_XML)
        result = self.client.lookup_by_name("Platform Team")
        assert result.found
        assert result.group_id == "4471"
        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://q.example.com/api/2.0/fo/asset/group/")
        assert kwargs["params"] == {"action": "list", "title": "Platform Team"}
        assert kwargs["auth"] == ("user", "secret")
        assert kwargs["timeout"] == 5
        assert "X-Requested-With" in kwargs["headers"]

    @patch(PATCH_TARGET)
    def test_lookup_not_found(self, mock_request):
        mock_request.return_value = _make_resp(text=GROUP_LIST_EMPTY_XML)
        result = self.client.lookup_by_name("Nobody")
        assert not result.found
        assert not result.transport_error
        assert result.body == GROUP_LIST_EMPTY_XML

    @patch(PATCH_TARGET)
    def test_lookup_transport_error(self, mock_request, caplog):
        mock_request.side_effect = requests.ConnectionError("connection refused")
        result = self.client.lookup_by_name("Platform Team")
        assert result.transport_error
        assert not result.found
        assert "Authorization=Basic ****" in caplog.text
        assert "secret" not in caplog.text

    @patch(PATCH_TARGET)
    def test_http_error_without_code_is_transport_failure(self, mock_request, caplog):
        mock_request.return_value = _make_resp(status=502, text="Bad Gateway")
        result = self.client.lookup_by_name("Platform Team")
        assert result.transport_error
        assert "HTTP Response Code: 502" in caplog.text
        assert "Bad Gateway" in caplog.text

    @patch(PATCH_TARGET)
    def test_http_error_with_code_is_returned(self, mock_request):
        body = "<SIMPLE_RETURN><RESPONSE><CODE>2000</CODE></RESPONSE></SIMPLE_RETURN>"
        mock_request.return_value = _make_resp(status=401, text=body)
        result = self.client.lookup_by_name("Platform Team")
        assert not result.transport_error
        assert not result.found
        assert result.body == body

    @patch(PATCH_TARGET)
    def test_edit_add(self, mock_request):
        mock_request.return_value = _make_resp(text="<SIMPLE_RETURN/>")
        body = self.client.edit_membership("4471", "add", {"10.0.0.2", "10.0.0.1"})
        assert body == "<SIMPLE_RETURN/>"
        args, kwargs = mock_request.call_args
        assert args[0] == "POST"
        assert kwargs["data"] == {"action": "edit", "id": "4471", "add_ips": "10.0.0.1,10.0.0.2"}

    @patch(PATCH_TARGET)
    def test_edit_remove(self, mock_request):
        mock_request.return_value = _make_resp(text="")
        self.client.edit_membership("4471", "remove", ["10.0.0.9"])
        _, kwargs = mock_request.call_args
        assert kwargs["data"]["remove_ips"] == "10.0.0.9"
        assert "add_ips" not in kwargs["data"]

    @patch(PATCH_TARGET)
    def test_edit_transport_error_returns_none(self, mock_request, caplog):
        mock_request.side_effect = requests.Timeout("timed out")
        assert self.client.edit_membership("4471", "add", ["10.0.0.1"]) is None
        assert "Request data" in caplog.text

    @patch(PATCH_TARGET)
    def test_edit_invalid_action_raises_before_io(self, mock_request):
        with pytest.raises(ValueError):
            self.client.edit_membership("4471", "purge", ["10.0.0.1"])
        mock_request.assert_not_called()

    def test_create_not_supported(self):
        with pytest.raises(NotImplementedError):
            self.client.create("x", [])


class TestTagApiClient:
    def setup_method(self):
        self.client = TagApiClient("user", "secret", base_url="https://q.example.com")

    @patch(PATCH_TARGET)
    def test_lookup_found(self, mock_request):
        mock_request.return_value = _make_resp(text=TAG_SEARCH_XML)
        result = self.client.lookup_by_name("Platform Team")
        assert result.group_id == "9001"
        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://q.example.com/qps/rest/2.0/search/am/tag")
        criteria = kwargs["json"]["ServiceRequest"]["filters"]["Criteria"]
        assert criteria == [{"field": "name", "operator": "EQUALS", "value": "Platform Team"}]
        assert kwargs["headers"]["Content-Type"] == "application/json"

    @patch(PATCH_TARGET)
    def test_lookup_not_found(self, mock_request):
        mock_request.return_value = _make_resp(text=TAG_SEARCH_EMPTY_XML)
        result = self.client.lookup_by_name("Nobody")
        assert not result.found
        assert not result.transport_error

    @patch(PATCH_TARGET)
    def test_create_with_initial_ips(self, mock_request):
        mock_request.return_value = _make_resp(text=TAG_SEARCH_XML)
        result = self.client.create("Platform Team", ["10.0.0.2", "10.0.0.1"])
        assert result.group_id == "9001"
        args, kwargs = mock_request.call_args
        assert args[1] == "https://q.example.com/qps/rest/2.0/create/am/tag"
        tag = kwargs["json"]["ServiceRequest"]["data"]["Tag"]
        assert tag["name"] == "Platform Team"
        assert tag["ipList"]["add"]["IpAddress"] == [{"value": "10.0.0.1"}, {"value": "10.0.0.2"}]

    @patch(PATCH_TARGET)
    def test_create_without_ips_omits_list(self, mock_request):
        mock_request.return_value = _make_resp(text=TAG_SEARCH_XML)
        self.client.create("Platform Team", [])
        _, kwargs = mock_request.call_args
        assert "ipList" not in kwargs["json"]["ServiceRequest"]["data"]["Tag"]

    @patch(PATCH_TARGET)
    def test_create_transport_error(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("reset")
        assert self.client.create("Platform Team", ["10.0.0.1"]).transport_error

    @patch(PATCH_TARGET)
    def test_edit_remove(self, mock_request):
        mock_request.return_value = _make_resp(text=TAG_SEARCH_XML)
        self.client.edit_membership("9001", "remove", ["10.0.0.1"])
        args, kwargs = mock_request.call_args
        assert args[1] == "https://q.example.com/qps/rest/2.0/update/am/tag/9001"
        ip_list = kwargs["json"]["ServiceRequest"]["data"]["Tag"]["ipList"]
        assert ip_list == {"remove": {"IpAddress": [{"value": "10.0.0.1"}]}}

    @patch(PATCH_TARGET)
    def test_edit_invalid_action_raises(self, mock_request):
        with pytest.raises(ValueError):
            self.client.edit_membership("9001", "replace", ["10.0.0.1"])
        mock_request.assert_not_called()
