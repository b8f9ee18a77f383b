from typing import Dict, List, Optional
from grpcexplorer import constants
from grpcexplorer.helper import helper
from grpcexplorer.errors import ExplorerError, NegotiationError, UnreachableError, EncryptionMismatchError
from grpcexplorer.TypeIntrospector import ServiceDescription, MethodDescription, placeholder_definition


class OptimizedDiscovery(helper):
    """
    Service listing through the Cosmos SDK v2alpha1 reflection service.

    Two unary calls return every query service with its method names and every
    transaction message type, without field detail. The resulting methods
    carry placeholder definitions with empty field lists; real fields are
    fetched per type later on. ``discover`` returns None when the endpoint
    does not offer the service so the caller can fall back to full discovery;
    endpoint failures such as an unreachable host are raised instead.
    """

    def __init__(self, session, timeout_ms: int = constants.OPTIMIZED_TIMEOUT_MS):
        super().__init__()
        self.session = session
        self.timeout_ms = timeout_ms

    async def discover(self) -> Optional[List[ServiceDescription]]:
        service_name = constants.COSMOS_REFLECTION_SERVICE
        try:
            await self.session.discover_one(service_name)
            queries = await self.session.invoke(service_name, "GetQueryServicesDescriptor", {}, self.timeout_ms)
            txs = await self.session.invoke(service_name, "GetTxDescriptor", {}, self.timeout_ms)
        except (NegotiationError, UnreachableError, EncryptionMismatchError):
            # the endpoint itself is unusable, full discovery would fail the same way
            raise
        except ExplorerError as e:
            self.logger.info(f"Optimized discovery not available on {self.session.endpoint.target}: {e}")
            return None

        services = self.query_services(queries.result)
        if not services:
            self.logger.info("Optimized discovery returned no query services")
            return None

        transactions = self.tx_service(txs.result)
        if transactions is not None:
            services.append(transactions)
        self.logger.info(f"Optimized discovery found {len(services)} services")
        return services

    def query_services(self, response: Dict) -> List[ServiceDescription]:
        services = []
        for query_service in (response.get("queries") or {}).get("query_services") or []:
            full_name = query_service.get("fullname")
            if not full_name:
                continue
            methods = []
            for method in query_service.get("methods") or []:
                name = method.get("name")
                if not name:
                    continue
                request_type = method.get("full_query_path") or f"{full_name}.{name}Request"
                response_type = f"{full_name}.{name}Response"
                methods.append(MethodDescription(
                    name=name,
                    full_name=f"{full_name}/{name}",
                    service_name=full_name,
                    request_type=request_type,
                    response_type=response_type,
                    request_definition=placeholder_definition(request_type),
                    response_definition=placeholder_definition(response_type),
                ))
            services.append(ServiceDescription(
                name=full_name.rsplit(".", 1)[-1], full_name=full_name, methods=methods
            ))
        return services

    def tx_service(self, response: Dict) -> Optional[ServiceDescription]:
        methods = []
        for msg in (response.get("tx") or {}).get("msgs") or []:
            type_url = msg.get("msg_type_url")
            if not type_url:
                continue
            type_name = type_url.lstrip("/")
            package, _, msg_name = type_name.rpartition(".")
            response_type = f"{package}.{msg_name}Response" if package else f"{msg_name}Response"
            methods.append(MethodDescription(
                name=msg_name,
                full_name=type_url,
                service_name=constants.COSMOS_TX_SERVICE,
                request_type=type_name,
                response_type=response_type,
                request_definition=placeholder_definition(type_name),
                response_definition=placeholder_definition(response_type),
            ))
        if not methods:
            return None
        return ServiceDescription(
            name=constants.COSMOS_TX_SERVICE.rsplit(".", 1)[-1],
            full_name=constants.COSMOS_TX_SERVICE,
            methods=methods,
        )


def merge_services(primary: List[ServiceDescription], extra: List[ServiceDescription]) -> List[ServiceDescription]:
    """Adds services from ``extra`` by full name; shared services gain the methods they lack."""
    by_name = {service.full_name: service for service in primary}
    for service in extra:
        existing = by_name.get(service.full_name)
        if existing is None:
            by_name[service.full_name] = service
            continue
        known = {method.name for method in existing.methods}
        existing.methods.extend(method for method in service.methods if method.name not in known)
    return list(by_name.values())
