"""
Call-Control Scripts (TwiML)
XML documents the provider fetches from the voice URL of a placed call
"""
from typing import Optional
from xml.etree import ElementTree as ET

from dialer.domain.models.routing import RoutingCorrelation

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def _render(response: ET.Element) -> str:
    return XML_DECLARATION + ET.tostring(response, encoding="unicode")


def _say(parent: ET.Element, text: str, language: Optional[str] = None) -> None:
    attrs = {"language": language} if language else {}
    ET.SubElement(parent, "Say", attrs).text = text


def hangup_script() -> str:
    response = ET.Element("Response")
    ET.SubElement(response, "Hangup")
    return _render(response)


def power_dial_script(
    to_number: Optional[str],
    greeting: str,
    farewell: str,
    language: Optional[str] = None
) -> str:
    """
    Power-mode script: bridge to `to_number` when present, otherwise play
    a short holding message and hang up.
    """
    response = ET.Element("Response")
    if to_number:
        ET.SubElement(response, "Dial").text = to_number
        return _render(response)

    _say(response, greeting, language)
    ET.SubElement(response, "Pause", {"length": "1"})
    _say(response, farewell, language)
    ET.SubElement(response, "Hangup")
    return _render(response)


def parallel_enqueue_script(
    correlation: RoutingCorrelation,
    workflow_sid: str,
    waiting_message: Optional[str] = None,
    language: Optional[str] = None
) -> str:
    """
    Parallel-mode script: hand the answered call to the routing workflow.

    The correlation is attached as the task attributes and returned to us
    verbatim by the assignment callback.
    """
    response = ET.Element("Response")
    if waiting_message:
        _say(response, waiting_message, language)

    enqueue = ET.SubElement(response, "Enqueue", {"workflowSid": workflow_sid})
    ET.SubElement(enqueue, "Task").text = correlation.to_attributes()
    return _render(response)
