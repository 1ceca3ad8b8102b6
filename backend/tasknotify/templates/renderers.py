"""
Payload Renderers - Map a NotificationMessage onto outbound webhook JSON
"""
from typing import Any, Dict, Optional

from ..domain.enums import PayloadFormat
from ..domain.models import NotificationEvent, NotificationMessage, MessageButton


class PayloadRenderer:
    """Base renderer: subclasses shape the message body"""

    def render_body(self, message: NotificationMessage) -> Dict[str, Any]:
        raise NotImplementedError

    def render(
        self,
        message: NotificationMessage,
        event: NotificationEvent,
        chat_user_id: Optional[str] = None,
        app_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        payload = self.render_body(message)
        payload["notification_type"] = event.type.value
        payload["dedupe_key"] = event.dedupe_key
        if chat_user_id:
            payload["target_user"] = {"id": chat_user_id, "app_user_id": app_user_id}
        return payload


class CliqPayloadRenderer(PayloadRenderer):
    """Zoho Cliq message card: slides and buttons sit next to the card"""

    @staticmethod
    def _button(button: MessageButton) -> Dict[str, Any]:
        # Cliq marks destructive buttons with "-"
        style = "-" if button.label.startswith("✗") else "+"
        return {
            "label": button.label,
            "type": style,
            "action": {"type": button.action_type, "data": button.action_payload}
        }

    def render_body(self, message: NotificationMessage) -> Dict[str, Any]:
        body: Dict[str, Any] = {"text": message.text}
        if message.card is not None:
            body["card"] = {"title": message.card.title, "theme": message.card.theme}
            if message.card.slides:
                body["slides"] = [
                    slide.model_dump(exclude_none=True) for slide in message.card.slides
                ]
        if message.buttons:
            body["buttons"] = [self._button(b) for b in message.buttons]
        return body


class GenericPayloadRenderer(PayloadRenderer):
    """Platform-agnostic contract: text, card and buttons as modelled"""

    def render_body(self, message: NotificationMessage) -> Dict[str, Any]:
        return message.model_dump(mode="json", exclude_none=True)


RENDERERS = {
    PayloadFormat.CLIQ: CliqPayloadRenderer,
    PayloadFormat.GENERIC: GenericPayloadRenderer,
}


def get_renderer(payload_format: str) -> PayloadRenderer:
    """Renderer for a configured format name; unknown names fall back to Cliq"""
    try:
        renderer_cls = RENDERERS[PayloadFormat(payload_format)]
    except ValueError:
        renderer_cls = CliqPayloadRenderer
    return renderer_cls()
