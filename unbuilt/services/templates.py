"""Plan templates: reusable phase and task structures."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from unbuilt.core.errors import ConflictError, NotFoundError, ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import ActionPlan, PlanStatus, PlanTemplate
from unbuilt.services.plans import clear_plan_structure, materialize_phases

logger = get_logger(__name__)

TEMPLATE_FIELDS = ("name", "description", "category", "icon", "phases", "is_default", "is_active")


def _phase(name: str, description: str, order: int, duration: str, tasks: List[Tuple[str, str, str]]) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "order": order,
        "estimated_duration": duration,
        "tasks": [
            {"title": title, "description": desc, "estimated_time": time, "resources": [], "order": i}
            for i, (title, desc, time) in enumerate(tasks, start=1)
        ],
    }


DEFAULT_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Software Startup",
        "description": "Optimized for SaaS and software products with focus on MVP development and user validation",
        "category": "software",
        "icon": "code",
        "is_default": True,
        "phases": [
            _phase("Research & Validation", "Validate market need and technical feasibility", 1, "3-4 weeks", [
                ("Conduct user interviews", "Interview 20-30 potential users to validate problem and solution fit", "2 weeks"),
                ("Analyze competitor landscape", "Research existing solutions and identify differentiation opportunities", "1 week"),
                ("Create technical architecture", "Design system architecture and select tech stack", "1 week"),
                ("Define MVP feature set", "Prioritize features for minimum viable product", "3 days"),
            ]),
            _phase("MVP Development", "Build minimum viable product", 2, "8-12 weeks", [
                ("Set up development environment", "Configure CI/CD, hosting, databases, and development tools", "3 days"),
                ("Implement authentication system", "Build secure user authentication and authorization", "1 week"),
                ("Build core features", "Implement essential functionality defined in MVP scope", "6 weeks"),
                ("Create landing page", "Design and build marketing website with clear value proposition", "1 week"),
                ("Implement analytics", "Set up user analytics and tracking", "3 days"),
            ]),
            _phase("Beta Testing & Iteration", "Test with early users and refine product", 3, "4-6 weeks", [
                ("Recruit beta testers", "Find 50-100 early adopters willing to test the product", "1 week"),
                ("Conduct beta testing", "Run structured beta program with feedback collection", "3 weeks"),
                ("Analyze feedback and metrics", "Review user feedback, usage data, and identify improvements", "1 week"),
                ("Implement critical fixes", "Address major bugs and usability issues", "2 weeks"),
            ]),
            _phase("Launch & Growth", "Public launch and initial growth strategies", 4, "8+ weeks", [
                ("Prepare launch materials", "Create press kit, demo videos, and launch content", "1 week"),
                ("Execute launch campaign", "Launch on Product Hunt, social media, and relevant communities", "1 week"),
                ("Set up customer support", "Implement support system and documentation", "1 week"),
                ("Implement growth experiments", "Run A/B tests and growth experiments to improve conversion", "Ongoing"),
            ]),
        ],
    },
    {
        "name": "Physical Product",
        "description": "Structured approach for hardware and physical product development",
        "category": "physical",
        "icon": "package",
        "is_default": False,
        "phases": [
            _phase("Concept & Design", "Define product concept and create initial designs", 1, "4-6 weeks", [
                ("Research market and user needs", "Conduct market research and identify target customer pain points", "2 weeks"),
                ("Create product sketches", "Develop initial concept sketches and design variations", "1 week"),
                ("Build 3D CAD models", "Create detailed 3D models for prototyping", "2 weeks"),
                ("Select materials and suppliers", "Research and identify potential manufacturing partners", "1 week"),
            ]),
            _phase("Prototyping", "Build and test physical prototypes", 2, "6-8 weeks", [
                ("Create first prototype", "Build initial prototype using 3D printing or basic manufacturing", "2 weeks"),
                ("Conduct user testing", "Test prototype with target users and gather feedback", "2 weeks"),
                ("Refine design based on feedback", "Iterate on design to address issues and improve usability", "2 weeks"),
            ]),
            _phase("Manufacturing Setup", "Establish manufacturing and supply chain", 3, "8-12 weeks", [
                ("Finalize manufacturer selection", "Choose manufacturing partner and negotiate terms", "2 weeks"),
                ("Run pilot production", "Produce small batch to test manufacturing process", "3 weeks"),
                ("Set up quality control", "Establish QC processes and testing procedures", "1 week"),
            ]),
            _phase("Launch & Distribution", "Bring product to market", 4, "6+ weeks", [
                ("Create marketing materials", "Develop product photography, videos, and marketing content", "2 weeks"),
                ("Set up e-commerce store", "Build online store with payment and shipping integration", "2 weeks"),
                ("Establish retail partnerships", "Approach retailers and distributors for partnerships", "Ongoing"),
            ]),
        ],
    },
    {
        "name": "Service Business",
        "description": "Framework for launching service-based businesses and consulting",
        "category": "service",
        "icon": "briefcase",
        "is_default": False,
        "phases": [
            _phase("Service Definition", "Define service offering and target market", 1, "2-3 weeks", [
                ("Identify target market", "Define ideal customer profile and market segment", "1 week"),
                ("Define service packages", "Create tiered service offerings with clear deliverables", "1 week"),
                ("Set pricing strategy", "Research market rates and establish competitive pricing", "3 days"),
            ]),
            _phase("Business Setup", "Establish business operations and infrastructure", 2, "3-4 weeks", [
                ("Register business entity", "Complete legal registration and obtain necessary licenses", "1 week"),
                ("Set up business systems", "Implement CRM, invoicing, and project management tools", "1 week"),
                ("Build professional website", "Create website showcasing services and portfolio", "2 weeks"),
            ]),
            _phase("Client Acquisition", "Build client base and establish reputation", 3, "8+ weeks", [
                ("Develop marketing strategy", "Create content marketing and lead generation plan", "1 week"),
                ("Offer pilot projects", "Provide discounted services to first clients for testimonials", "4 weeks"),
                ("Implement referral program", "Create incentives for client referrals", "1 week"),
            ]),
            _phase("Scale & Optimize", "Grow business and improve operations", 4, "Ongoing", [
                ("Standardize processes", "Create SOPs and workflows for consistent service delivery", "2 weeks"),
                ("Optimize pricing and packages", "Refine offerings based on profitability and demand", "Ongoing"),
            ]),
        ],
    },
]


class TemplateService:
    """Manages plan templates and applies them to plans."""

    def __init__(self, db: Session):
        self.db = db

    def list_templates(self, category: Optional[str] = None) -> List[PlanTemplate]:
        query = self.db.query(PlanTemplate).filter(PlanTemplate.is_active == True)
        if category:
            query = query.filter(PlanTemplate.category == category)
        return query.order_by(PlanTemplate.is_default.desc(), PlanTemplate.name).all()

    def get_template(self, template_id: UUID) -> PlanTemplate:
        template = self.db.query(PlanTemplate).filter(PlanTemplate.id == template_id).first()
        if not template:
            raise NotFoundError("Template not found")
        return template

    def get_default_template(self) -> Optional[PlanTemplate]:
        """The flagged default, else the first active template by name."""
        template = self.db.query(PlanTemplate).filter(
            PlanTemplate.is_default == True, PlanTemplate.is_active == True
        ).first()
        if template:
            return template
        return (
            self.db.query(PlanTemplate)
            .filter(PlanTemplate.is_active == True)
            .order_by(PlanTemplate.name)
            .first()
        )

    def create_template(self, data: Dict[str, Any]) -> PlanTemplate:
        if not data.get("name") or not data.get("category"):
            raise ValidationFailed("Template name and category are required")
        if self.db.query(PlanTemplate).filter(PlanTemplate.name == data["name"]).first():
            raise ConflictError(f"Template '{data['name']}' already exists")

        template = PlanTemplate(**{k: v for k, v in data.items() if k in TEMPLATE_FIELDS})
        self.db.add(template)
        self.db.flush()
        logger.info("template_created", template_id=str(template.id), name=template.name)
        return template

    def update_template(self, template_id: UUID, updates: Dict[str, Any]) -> PlanTemplate:
        template = self.get_template(template_id)
        for field, value in updates.items():
            if field in TEMPLATE_FIELDS:
                setattr(template, field, value)
        template.updated_at = datetime.utcnow()
        self.db.flush()
        return template

    def delete_template(self, template_id: UUID) -> None:
        """Soft delete: plans created from the template keep their reference."""
        template = self.get_template(template_id)
        template.is_active = False
        template.updated_at = datetime.utcnow()
        self.db.flush()
        logger.info("template_deactivated", template_id=str(template_id))

    def apply_template(self, plan_id: UUID, template_id: UUID, user_id: UUID) -> ActionPlan:
        """Replace a plan's phases and tasks with the template's structure."""
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id, ActionPlan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan not found or access denied")
        template = self.get_template(template_id)

        clear_plan_structure(self.db, plan.id)
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id).first()
        materialize_phases(self.db, plan, template.phases or [])

        plan.template_id = template.id
        plan.updated_at = datetime.utcnow()
        self.db.flush()
        self.db.refresh(plan)

        logger.info("template_applied", plan_id=str(plan_id), template_id=str(template_id))
        return plan

    def get_usage_stats(self, template_id: UUID) -> Dict[str, int]:
        self.get_template(template_id)
        counts = dict(
            self.db.query(ActionPlan.status, func.count(ActionPlan.id))
            .filter(ActionPlan.template_id == template_id)
            .group_by(ActionPlan.status)
            .all()
        )
        return {
            "total_plans": sum(counts.values()),
            "active_plans": counts.get(PlanStatus.ACTIVE, 0),
            "completed_plans": counts.get(PlanStatus.COMPLETED, 0),
        }

    def seed_default_templates(self) -> int:
        """Insert any bundled template that does not exist yet. Returns the number added."""
        added = 0
        for data in DEFAULT_TEMPLATES:
            if self.db.query(PlanTemplate).filter(PlanTemplate.name == data["name"]).first():
                continue
            self.db.add(PlanTemplate(**data))
            added += 1
        self.db.flush()
        logger.info("templates_seeded", added=added)
        return added
