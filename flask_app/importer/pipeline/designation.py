"""
Work out what a payment was for from its plan nickname or description.

Sponsorship payments name one or more children; everything else maps to a
project, falling back to the system "General Donation" project.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from flask_app.models import Child, Project, ProjectType

GENERAL_PROJECT_TITLE = "General Donation"
PROJECT_TITLE_MAX_LENGTH = 100

SPONSORSHIP_PATTERN = re.compile(r"Monthly Sponsorship Donation for (.+)", re.IGNORECASE)
CAMPAIGN_PATTERN = re.compile(r"Donation for Campaign (\d+)", re.IGNORECASE)
_GENERAL_PATTERNS = (
    re.compile(r"\$\d+ - General Monthly Donation", re.IGNORECASE),
    re.compile(r"Invoice [A-Z0-9-]+", re.IGNORECASE),
    re.compile(r"^[\w+\-.]+@[a-z\d\-]+(\.[a-z\d\-]+)*\.[a-z]+$", re.IGNORECASE),
    re.compile(r"^\d+$"),
    re.compile(r"Subscription creation", re.IGNORECASE),
    re.compile(r"Captured via Payment app", re.IGNORECASE),
    re.compile(r"Payment for Stripe App", re.IGNORECASE),
)


@dataclass
class Designation:
    project: Project | None = None
    children: list[Child] = field(default_factory=list)


def extract_child_names(text: str | None) -> list[str]:
    """Return child names from a sponsorship description, in order, without blanks."""

    if not text:
        return []
    match = SPONSORSHIP_PATTERN.search(text)
    if not match:
        return []
    names: list[str] = []
    for name in match.group(1).split(","):
        cleaned = name.strip()
        if cleaned and cleaned not in names:
            names.append(cleaned)
    return names


def is_general_donation(text: str | None) -> bool:
    if text is None or not text.strip():
        return True
    token = text.strip()
    return any(pattern.search(token) for pattern in _GENERAL_PATTERNS)


class DesignationResolver:
    """Find-or-create the projects and children a payment is designated to."""

    def __init__(self, session: Session):
        self.session = session

    def resolve(self, text: str | None) -> Designation:
        child_names = extract_child_names(text)
        if child_names:
            return Designation(children=[self._child(name) for name in child_names])
        return Designation(project=self._project_for(text))

    def _project_for(self, text: str | None) -> Project:
        if is_general_donation(text):
            return self._project(
                GENERAL_PROJECT_TITLE,
                project_type=ProjectType.GENERAL,
                system=True,
                description="Default project for donations not assigned to a specific campaign or initiative",
            )

        campaign = CAMPAIGN_PATTERN.search(text or "")
        if campaign:
            return self._project(f"Campaign {campaign.group(1)}", project_type=ProjectType.CAMPAIGN)

        return self._project(
            text.strip()[:PROJECT_TITLE_MAX_LENGTH],
            project_type=ProjectType.GENERAL,
            description=f"Auto-created from Stripe import. Original description: {text}",
        )

    def _project(
        self,
        title: str,
        *,
        project_type: ProjectType,
        system: bool = False,
        description: str | None = None,
    ) -> Project:
        project = self.session.execute(select(Project).where(Project.title == title)).scalars().first()
        if project is None:
            project = Project(title=title, project_type=project_type, system=system, description=description)
            self.session.add(project)
            self.session.flush()
        return project

    def _child(self, name: str) -> Child:
        child = self.session.execute(select(Child).where(Child.name == name)).scalars().first()
        if child is None:
            child = Child(name=name)
            self.session.add(child)
            self.session.flush()
        return child
