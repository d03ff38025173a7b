"""Data access layer."""
from shared.repositories.lesson_repository import LessonRepository
from shared.repositories.node_repository import NodeRepository
from shared.repositories.mastery_repository import MasteryRepository
