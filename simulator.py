"""Interactive terminal simulator — drive the vault engine without a UI."""

import asyncio
import getpass
import logging

from totp_vault.backend.vault import VaultBackend
from totp_vault.commands.local_adapter import LocalCommandAdapter
from totp_vault.config import settings
from totp_vault.database.engine import async_session_factory, init_db
from totp_vault.errors import BiometricError, VaultError
from totp_vault.services.local_storage import LocalStorage
from totp_vault.services.platform_secret import AuthOptions, DeviceKeyPlatformSecret
from totp_vault.services.session import VaultSession

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"

HELP = """\
  codes                      show current codes
  add <otpauth uri>          add a service
  rename <id> <name>         rename a service
  issuer <id> <issuer>       change a service's issuer
  delete <id>                delete a service
  icon <id>                  fetch a service's icon again
  quit                       exit"""


async def ask(prompt: str) -> str:
    return (await asyncio.to_thread(input, prompt)).strip()


async def confirm_prompt(reason: str, options: AuthOptions) -> bool:
    answer = await ask(f"{YELLOW}🔒 {options.title or reason} [y/N]: {RESET}")
    return answer.lower() in ("y", "yes")


def show_codes(session: VaultSession) -> None:
    view = session.scheduler.view()
    if not view:
        print(f"{DIM}No codes yet.{RESET}\n")
        return
    for service_id, service in sorted(session.directory.snapshot().items()):
        shown = view.get(service_id)
        code = shown.code if shown else "……"
        remaining = f"{shown.remaining:>3}s" if shown else "   -"
        print(f"  {BOLD}{code}{RESET}  {DIM}{remaining}{RESET}  {service.issuer} · {service.name}  {DIM}[{service_id}]{RESET}")
    print()


async def unlock(session: VaultSession) -> None:
    if await session.bootstrap.has_stored_credential():
        try:
            result = await session.bootstrap.unlock_with_stored_credential()
            if result is not None:
                print(f"{GREEN}Unlocked without password ({result.service_count} services).{RESET}\n")
                return
        except BiometricError as exc:
            print(f"{YELLOW}{exc.detail} — type your password instead.{RESET}")
        except VaultError as exc:
            print(f"{RED}{exc.detail}{RESET}")

    while True:
        password = await asyncio.to_thread(getpass.getpass, "Vault password: ")
        try:
            result = await session.bootstrap.unlock(password)
        except VaultError as exc:
            print(f"{RED}{exc.detail}{RESET}")
            continue
        break

    if result.needs_onboarding:
        print(f"{DIM}Your vault is empty. Add a service with 'add <otpauth uri>'.{RESET}\n")
    if result.offer_credential_storage:
        answer = await ask("Unlock with biometrics next time? [y/N]: ")
        if answer.lower() in ("y", "yes"):
            try:
                await session.bootstrap.store_credential(password)
            except BiometricError as exc:
                print(f"{RED}{exc.detail}{RESET}")


async def main() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.WARNING,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    print(f"\n{BOLD}{'=' * 52}")
    print(f"  🔑  {settings.app_name} — Simulator")
    print(f"{'=' * 52}{RESET}\n")

    await init_db()

    adapter = LocalCommandAdapter(VaultBackend(), timeout=settings.command_timeout_seconds)
    storage = LocalStorage(async_session_factory)
    secret = DeviceKeyPlatformSecret(prompt=confirm_prompt)

    async with VaultSession(adapter, storage, secret) as session:
        await unlock(session)
        print(f"{DIM}{HELP}{RESET}\n")

        while True:
            try:
                line = await ask(f"{BLUE}{BOLD}vault>{RESET} ")
            except (KeyboardInterrupt, EOFError):
                print(f"\n{DIM}Goodbye!{RESET}")
                break

            command, _, rest = line.partition(" ")
            command = command.lower()
            try:
                if not command:
                    continue
                if command == "quit":
                    print(f"{DIM}Goodbye!{RESET}")
                    break
                if command == "codes":
                    show_codes(session)
                elif command == "add":
                    service = await session.mutations.add(rest)
                    print(f"{GREEN}Service added: {service.issuer} · {service.name}{RESET}\n")
                elif command in ("rename", "issuer"):
                    service_id, _, value = rest.partition(" ")
                    field = {"name" if command == "rename" else "issuer": value}
                    await session.mutations.update(service_id, **field)
                    print(f"{GREEN}Service updated.{RESET}\n")
                elif command == "delete":
                    await session.mutations.delete(rest)
                    print(f"{GREEN}Service deleted.{RESET}\n")
                elif command == "icon":
                    icon = await session.mutations.fetch_icon(rest)
                    print(f"{GREEN}Icon: {icon or '(none)'}{RESET}\n")
                else:
                    print(f"{DIM}{HELP}{RESET}\n")
            except VaultError as exc:
                print(f"{RED}{type(exc).__name__}: {exc.detail}{RESET}\n")


if __name__ == "__main__":
    asyncio.run(main())
