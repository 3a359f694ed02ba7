# killer_assistant/demo/seed_demo_accounts.py

from killer_assistant.storage.models import Account, Plan
from killer_assistant.storage.repository import AccountRepository, initialize_schema

initialize_schema()
repository = AccountRepository()

accounts = [
    Account(
        id="demo-pro",
        plan=Plan.METERED,
        allowance=100,
        consumed=90,  # nearly exhausted
        display_name="Demo Pro",
        email="pro@example.com",
        first_session_bonus_pending=False
    ),
    Account(
        id="demo-free",
        plan=Plan.UNMETERED_BASIC,
        allowance=5,
        consumed=0,
        display_name="Demo Free",
        email="free@example.com"
    ),
    Account(
        id="demo-premium",
        plan=Plan.UNMETERED_TOP,
        allowance=0,
        consumed=0,
        display_name="Demo Premium",
        email="premium@example.com",
        first_session_bonus_pending=False
    )
]

for account in accounts:
    if repository.get_account(account.id) is None:
        repository.create_account(account)

print("Demo accounts inserted")
