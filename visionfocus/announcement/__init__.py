"""
Announcement Module.

Turns classified detections into one natural-language sentence for the
external speech-synthesis collaborator. Never plays audio itself.
"""

from .composer import (
    AnnouncementComposer,
    TemplateSelector,
    RandomTemplateSelector,
    FixedTemplateSelector,
    NO_OBJECTS_ANNOUNCEMENT,
    article_for,
)
