"""Domain services: searches, plans, tasks, dependencies, progress and the resource library."""

from .dependencies import DependencyService
from .plans import PlanService
from .progress import ProgressService
from .recommendations import RecommendationService
from .resources import ResourceService
from .tasks import TaskService
from .templates import TemplateService

__all__ = [
    "DependencyService",
    "PlanService",
    "ProgressService",
    "RecommendationService",
    "ResourceService",
    "TaskService",
    "TemplateService",
]
