"""Base delivery channel interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class Attachment:
    """A file carried by a message.

    Inline attachments are referenced from the HTML body as ``cid:<content_id>``.
    """

    name: str
    mime_type: str
    data: bytes
    content_id: str | None = None

    @property
    def is_inline(self) -> bool:
        return self.content_id is not None


class DeliveryChannel(ABC):
    """
    Abstract outbound channel for reports.

    Callers check ``is_configured()`` before ``send``; a failed send raises
    ``TransportError``.
    """

    name: str = "base"

    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @abstractmethod
    async def send(
        self,
        recipients: list[str],
        subject: str,
        html_body: str,
        attachment: Attachment,
        inline_images: Sequence[Attachment] = (),
    ) -> None:
        """
        Send one message with ``attachment`` to every recipient.

        Args:
            recipients: E-mail addresses.
            subject: Message subject.
            html_body: HTML message body.
            attachment: The report file.
            inline_images: Images referenced from the body by content id.
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
