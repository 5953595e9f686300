# Push notification delivery
from mingleo.infra.push.fcm_gateway import FcmPushGateway
from mingleo.infra.push.new_message_relay import NewMessageRelay, RelayResult

__all__ = ["FcmPushGateway", "NewMessageRelay", "RelayResult"]
