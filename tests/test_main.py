import json
import pytest
from grpcexplorer.main import main, validate_endpoints
from grpcexplorer.grpcreflectionclient import grpcreflectionclient


@pytest.mark.asyncio
async def test_discover_payload(server):
    response = await main(server.address, encrypted=False).discover(optimized=False)
    assert response["error"] is False
    data = response["data"]
    assert data["status"]["strategy"] == "standard"
    assert data["status"]["complete"] is True
    assert data["failed_services"] == []
    greeter = next(s for s in data["services"] if s["full_name"] == "pkg.Greeter")
    assert [m["name"] for m in greeter["methods"]] == ["SayHello", "Chat"]
    json.dumps(data)


@pytest.mark.asyncio
async def test_discover_reports_failed_services(make_server):
    server = await make_server(fail_symbols={"inventory.Inventory": -1})
    response = await main(server.address, encrypted=False).discover(optimized=False)
    assert response["error"] is False
    assert response["data"]["status"]["complete"] is False
    assert [f["service"] for f in response["data"]["failed_services"]] == ["inventory.Inventory"]


@pytest.mark.asyncio
async def test_describe_method_fetches_request_types(make_server):
    server = await make_server(omit_dependencies=True)
    response = await main(server.address, encrypted=False).describe_method("inventory.Inventory", "GetItem")
    assert response["error"] is False
    assert response["data"]["full_name"] == "inventory.GetItemRequest"
    assert response["data"]["fields"][0]["name"] == "sku"


@pytest.mark.asyncio
async def test_describe_type_loads_references(make_server):
    server = await make_server(omit_dependencies=True)
    response = await main(server.address, encrypted=False).describe_type("inventory.Item")
    assert response["error"] is False
    fields = {field["name"]: field for field in response["data"]["fields"]}
    assert fields["meta"]["nested_fields"] is not None
    assert fields["tree"]["nested_fields"][0]["name"] == "name"


@pytest.mark.asyncio
async def test_invoke_payload(server):
    response = await main(server.address, encrypted=False).invoke("pkg.Greeter", "SayHello", {"name": "x"})
    assert response["error"] is False
    assert response["data"]["result"] == {"message": "Hello, x"}
    assert isinstance(response["data"]["execution_time_ms"], int)
    assert response["data"]["warnings"] == []


@pytest.mark.asyncio
async def test_unknown_method_payload(server):
    response = await main(server.address, encrypted=False).invoke("pkg.Greeter", "SayBye", {})
    assert response["error"] is True
    error = response["data"]["error"]
    assert error["type"] == "NotFoundError"
    assert error["details"]["available_methods"] == ["SayHello", "Chat"]
    assert response["data"]["context"]["method"] == "SayBye"
    json.dumps(response)


@pytest.mark.asyncio
async def test_streaming_method_payload(server):
    response = await main(server.address, encrypted=False).invoke("pkg.Greeter", "Chat", {})
    assert response["error"] is True
    assert response["data"]["error"]["type"] == "StreamingUnsupportedError"


@pytest.mark.asyncio
async def test_deadline_payload(server):
    response = await main(server.address, encrypted=False, timeout_ms=200).invoke(
        "pkg.Greeter", "SayHello", {"name": "slow"}
    )
    assert response["error"] is True
    assert response["data"]["error"]["kind"] == "deadline_exceeded"
    assert response["data"]["error"]["code"] == "DEADLINE_EXCEEDED"


@pytest.mark.asyncio
async def test_missing_arguments():
    assert (await main("node:9090").invoke("", "SayHello"))["error"] is True
    assert (await main("").discover())["error"] is True


@pytest.mark.asyncio
async def test_validate_endpoints():
    response = await validate_endpoints(["localhost:9090", "no-such-host.invalid:443"])
    results = response["data"]["results"]
    assert [r["address"] for r in results] == ["localhost:9090", "no-such-host.invalid:443"]
    assert results[0]["reachable"] is True
    assert results[1]["reachable"] is False
    assert results[1]["error"]


@pytest.mark.asyncio
async def test_validate_empty_address():
    result = await main("").validate_endpoint("")
    assert result["reachable"] is False
    assert "required" in result["error"]


@pytest.mark.asyncio
async def test_unreachable_endpoint():
    response = await main("127.0.0.1:1", encrypted=False).discover(optimized=False)
    assert response["error"] is True
    error = response["data"]["error"]
    assert error["type"] == "UnreachableError"
    assert error["subtype"] == "transport_error"
    assert error["kind"] == "unreachable"
    assert error["code"] == "UNAVAILABLE"


@pytest.mark.asyncio
@pytest.mark.parametrize("optimized", [True, False])
async def test_unreachable_endpoint_with_either_strategy(optimized):
    response = await main("127.0.0.1:1", encrypted=False).discover(optimized=optimized)
    assert response["data"]["error"]["kind"] == "unreachable"


@pytest.mark.asyncio
async def test_tls_against_plaintext_endpoint(server):
    response = await main(server.address, encrypted=True).discover(optimized=False)
    assert response["error"] is True
    error = response["data"]["error"]
    assert error["type"] == "EncryptionMismatchError"
    assert error["kind"] == "encryption_mismatch"
    assert error["code"] == "UNAVAILABLE"


@pytest.mark.asyncio
async def test_unexpected_errors_become_payloads(server, monkeypatch):
    async def broken(self, *args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(grpcreflectionclient, "invoke", broken)
    response = await main(server.address, encrypted=False).invoke("pkg.Greeter", "SayHello", {"name": "x"})
    assert response["error"] is True
    assert response["data"]["error"]["type"] == "RuntimeError"
    assert response["data"]["error"]["message"] == "boom"
    json.dumps(response)
