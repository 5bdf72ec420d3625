"""
homeops/llm/base.py
Abstract base class for all classifier backends.
To add a new backend: subclass ClassifierBackend and implement complete().
"""

from abc import ABC, abstractmethod


class ClassifierBackend(ABC):
    """
    All model backends implement this interface.
    ClassificationAdapter calls complete() and gets back the raw model text;
    validation happens in homeops.llm.schema, never in the backend.
    """

    model: str = ''

    @abstractmethod
    def is_available(self) -> bool:
        """
        Returns True if the backend is reachable and ready.
        Used by the CLI/health check only — the pipeline never gates on it.
        """
        ...

    @abstractmethod
    def complete(self, text: str, api_key: str) -> str:
        """
        Classify one message and return the model's raw JSON text.
        Raises on transport failure (URLError, TimeoutError, OSError) so the
        adapter can decide whether to retry.
        """
        ...

    def build_prompt(self) -> str:
        """
        Shared system prompt. All backends use this unless they need a
        format-specific override.
        """
        return (
            "You are a household activity classifier. Given a chat message "
            "(usually Swedish), classify it as one of three kinds: "
            '"chore", "recovery", or "none".\n\n'
            '- "chore": household tasks or productive activities\n'
            '- "recovery": rest, relaxation, or self-care activities\n'
            '- "none": messages that do not describe any activity\n\n'
            'Assign an effort level: "low", "medium", or "high".\n'
            "Give a short activity label in the message's language and a "
            "confidence score between 0 and 1.\n\n"
            "Respond ONLY with a valid JSON object. No markdown, no explanation.\n\n"
            "{\n"
            '  "kind": "chore" or "recovery" or "none",\n'
            '  "activity_label": "short label, empty for none",\n'
            '  "effort_level": "low" or "medium" or "high",\n'
            '  "confidence": 0.0 to 1.0\n'
            "}\n\n"
            "CONFIDENCE BANDS:\n"
            "- 0.85-1.0: message clearly describes an activity\n"
            "- 0.6-0.84: message likely describes an activity\n"
            "- 0.3-0.59: ambiguous\n"
            "- 0.0-0.29: unlikely an activity\n\n"
            "EXAMPLES:\n"
            '- "Jag har städat hela lägenheten" -> chore, "städa", high, 0.95\n'
            '- "Diskade efter middagen" -> chore, "diska", medium, 0.92\n'
            '- "Tvättade alla kläder idag" -> chore, "tvätta", medium, 0.90\n'
            '- "Vilade på soffan en stund" -> recovery, "vila", low, 0.88\n'
            '- "Sov en tupplur" -> recovery, "sova", low, 0.90\n'
            '- "Vad ska vi äta ikväll?" -> none, "", low, 0.15'
        )
