from fastapi import Request
from storefront.payments.zarinpal import ZarinpalGateway


def get_gateway(request: Request) -> ZarinpalGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = ZarinpalGateway()
        request.app.state.gateway = gateway
    return gateway
