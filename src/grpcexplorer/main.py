import asyncio
import socket
import time
from typing import Any, Dict, List, Optional
from grpcexplorer import constants
from grpcexplorer.helper import helper
from grpcexplorer.grpcchannel import Endpoint
from grpcexplorer.grpcreflectionclient import grpcreflectionclient


class main(helper):
    """
    Operations exposed to callers. Every method returns
    ``{'error': bool, 'data': ...}``; on failure ``data`` is the serialized
    exception.
    """

    def __init__(self, host, encrypted: Optional[bool] = None, timeout_ms: int = constants.DEFAULT_TIMEOUT_MS,
                 ca_certificate: Optional[str] = None):
        super().__init__()
        self.host = host
        self.encrypted = encrypted
        self.timeout_ms = timeout_ms
        self.ca_certificate = ca_certificate

    def _client(self):
        return grpcreflectionclient(self.host, self.encrypted, self.ca_certificate)

    def _failure(self, function_name, args, error, context=None):
        self.log(function_name=function_name, args=args, exception=error)
        return {'error': True, 'data': self.exception_to_serializable(error, context)}

    async def discover(self, optimized: bool = True, include_types: bool = False):
        if not self.host:
            return {'error': True, 'data': 'Host is required'}
        try:
            async with self._client() as client:
                report = await client.discover(optimized, include_types)
            failed = report.failed
            data = {
                'services': [service.to_dict() for service in report.services],
                'status': {
                    'strategy': report.strategy,
                    'total_services': len(report.services),
                    'requested': len(report.result.requested) if report.result else len(report.services),
                    'failed': len(failed),
                    'complete': not failed,
                },
                'failed_services': [{'service': name, 'error': reason} for name, reason in failed.items()],
            }
            return {'error': False, 'data': data}
        except Exception as e:
            return self._failure('discover', [self.host, optimized], e, {'host': self.host})

    async def describe_method(self, service_name: str, method_name: str):
        if not service_name or not method_name:
            return {'error': True, 'data': 'Service name and method name are required'}
        try:
            async with self._client() as client:
                definition = await client.describe_method(service_name, method_name)
            return {'error': False, 'data': definition.to_dict()}
        except Exception as e:
            return self._failure('describe_method', [service_name, method_name], e,
                                 {'host': self.host, 'service': service_name, 'method': method_name})

    async def describe_type(self, type_name: str):
        if not type_name:
            return {'error': True, 'data': 'Type name is required'}
        try:
            async with self._client() as client:
                await client.discover_one(type_name)
                definition = await client.describe_type(type_name)
            return {'error': False, 'data': definition.to_dict()}
        except Exception as e:
            return self._failure('describe_type', [type_name], e, {'host': self.host, 'type': type_name})

    async def invoke(self, service_name: str, method_name: str, params: Optional[Dict[str, Any]] = None):
        if not service_name or not method_name:
            return {'error': True, 'data': 'Service name and method name are required'}
        started = time.monotonic()
        try:
            async with self._client() as client:
                outcome = await client.invoke(service_name, method_name, params or {}, self.timeout_ms)
            data = {
                'result': outcome.result,
                'execution_time_ms': int((time.monotonic() - started) * 1000),
                'warnings': outcome.warnings,
            }
            return {'error': False, 'data': data}
        except Exception as e:
            return self._failure('invoke', [service_name, method_name, params], e,
                                 {'host': self.host, 'service': service_name, 'method': method_name})

    async def validate_endpoint(self, address: Optional[str] = None,
                                timeout_ms: int = constants.VALIDATE_TIMEOUT_MS) -> Dict[str, Any]:
        """Name resolution check only; no connection is made."""
        address = address or self.host
        result = {'address': address, 'reachable': False}
        try:
            endpoint = Endpoint.parse(address, self.encrypted)
            loop = asyncio.get_running_loop()
            await asyncio.wait_for(
                loop.getaddrinfo(endpoint.host, endpoint.port, type=socket.SOCK_STREAM),
                timeout_ms / 1000.0,
            )
            result['reachable'] = True
        except asyncio.TimeoutError:
            result['error'] = f"DNS lookup timed out after {timeout_ms}ms"
        except (socket.gaierror, ValueError) as e:
            result['error'] = str(e)
        return result


async def validate_endpoints(addresses: List[str], timeout_ms: int = constants.VALIDATE_TIMEOUT_MS):
    """Checks many addresses concurrently; results keep the input order."""
    checks = [main(address).validate_endpoint(address, timeout_ms) for address in addresses]
    results = await asyncio.gather(*checks)
    return {'error': False, 'data': {
        'results': results,
        'reachable': sum(1 for item in results if item['reachable']),
        'total': len(results),
    }}
