"""
Unit tests for privacy_pools.state.asp — ASP tree download and parsing.
"""

import asyncio

import httpx
import pytest

from privacy_pools.state.asp import AspService, AspServiceError, AspTreeDocument

GATEWAY = "https://gateway.example/ipfs"


def _service(handler):
    return AspService(gateway_url=GATEWAY, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestAspTreeDocument:
    def test_mixed_number_encodings(self):
        doc = AspTreeDocument(levels=[[1, "2", "0x03"], ["0x10"]])
        assert doc.leaves == [1, 2, 3]
        assert doc.declared_root == 16

    def test_no_declared_root(self):
        assert AspTreeDocument(levels=[[1, 2]]).declared_root is None

    def test_single_leaf_is_its_own_root(self):
        assert AspTreeDocument(levels=[[7]]).declared_root == 7

    @pytest.mark.parametrize("levels", [[], "abc", [["x"]], [[True]]])
    def test_malformed(self, levels):
        with pytest.raises(ValueError):
            AspTreeDocument(levels=levels)


class TestAspService:
    def test_fetches_by_cid(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[["11", "22"], ["33"]])

        doc = asyncio.run(_service(handler).get_asp_tree("bafy123"))

        assert str(seen[0].url) == "https://gateway.example/ipfs/bafy123"
        assert doc.leaves == [11, 22]

    def test_empty_cid(self):
        with pytest.raises(AspServiceError, match="no IPFS CID"):
            asyncio.run(_service(lambda request: httpx.Response(200, json=[[1]])).get_asp_tree(""))

    def test_gateway_error(self):
        service = _service(lambda request: httpx.Response(504, text="gateway timeout"))
        with pytest.raises(AspServiceError, match="504"):
            asyncio.run(service.get_asp_tree("bafy123"))

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        with pytest.raises(AspServiceError, match="unreachable"):
            asyncio.run(_service(handler).get_asp_tree("bafy123"))

    def test_malformed_document(self):
        service = _service(lambda request: httpx.Response(200, json={"leaves": [1]}))
        with pytest.raises(AspServiceError, match="Malformed"):
            asyncio.run(service.get_asp_tree("bafy123"))

    def test_non_json_document(self):
        service = _service(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(AspServiceError, match="Malformed"):
            asyncio.run(service.get_asp_tree("bafy123"))
