"""
Seed script to populate a demo tenant.

Creates one organization with one user per role, a shared account and a
project, so every scope of the role permission table can be exercised.
The users are linked to identity-provider ids ``demo-<role>``.

Usage:
    python -m scripts.seed_demo
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db, init_db
from crm.features.accounts.models import Account, account_members
from crm.features.organizations.models import Organization
from crm.features.permissions.roles import Role
from crm.features.projects.models import Project, project_members
from crm.features.users.models import User
from crm.utils import get_logger


log = get_logger(__name__)


DEMO_ORGANIZATION = {
    "name": "Demo Company",
    "slug": "demo",
    "industry": "Software",
    "size": "11-50",
}


async def seed_organization(db: AsyncSession) -> Organization:
    """Get or create the demo organization."""
    organization = await db.scalar(
        select(Organization).where(Organization.slug == DEMO_ORGANIZATION["slug"])
    )
    if organization is not None:
        log.info("Organization '%s' already exists, skipping", organization.slug)
        return organization
    
    organization = Organization(**DEMO_ORGANIZATION)
    db.add(organization)
    await db.flush()
    log.info("Created organization '%s'", organization.slug)
    return organization


async def seed_users(db: AsyncSession, organization: Organization) -> dict[Role, User]:
    """
    Create one user per role.
    
    Returns:
        Dictionary mapping roles to User objects
    """
    users = {}
    for role in reversed(Role.ordered()):
        appwrite_id = f"demo-{role.value.lower().replace('_', '-')}"
        user = await db.scalar(select(User).where(User.appwrite_id == appwrite_id))
        if user is None:
            user = User(
                appwrite_id=appwrite_id,
                email=f"{appwrite_id}@example.com",
                name=f"Demo {role.value.replace('_', ' ').title()}",
                role=role.value,
                organization_id=organization.id,
            )
            db.add(user)
            log.info("Created user %s with role %s", user.email, role.value)
        else:
            log.debug("User %s already exists, skipping", appwrite_id)
        users[role] = user
    
    await db.flush()
    return users


async def seed_workspace(db: AsyncSession, organization: Organization, users: dict[Role, User]) -> None:
    """Create a demo account and project with the USER as a member of both."""
    existing = await db.scalar(
        select(Account).where(Account.organization_id == organization.id, Account.name == "Acme Corp")
    )
    if existing is not None:
        log.info("Demo workspace already exists, skipping")
        return
    
    member = users[Role.USER]
    account = Account(
        organization_id=organization.id,
        name="Acme Corp",
        industry="Manufacturing",
        created_by_id=member.id,
    )
    db.add(account)
    await db.flush()
    await db.execute(account_members.insert().values(account_id=account.id, user_id=member.id))
    
    project = Project(
        organization_id=organization.id,
        account_id=account.id,
        name="Acme onboarding",
    )
    db.add(project)
    await db.flush()
    await db.execute(project_members.insert().values(project_id=project.id, user_id=member.id))
    log.info("Created account '%s' and project '%s'", account.name, project.name)


async def main():
    """Main function to seed the demo tenant."""
    log.info("Starting demo seeding...")
    
    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()
    
    # Get database session
    async for db in get_db():
        try:
            organization = await seed_organization(db)
            users = await seed_users(db, organization)
            await seed_workspace(db, organization, users)
            await db.commit()
            
            log.info("Demo seeding completed successfully!")
            for role, user in users.items():
                log.info("  - %s: %s (identity %s)", role.value, user.email, user.appwrite_id)
        
        except Exception as e:
            log.error("Error seeding demo data: %s", e, exc_info=True)
            await db.rollback()
            raise
        
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
