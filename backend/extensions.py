from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .config import AppSettings
from .db import Database
from .services.coordinator import LocalVRFCoordinator
from .services.ledger import AccountLedger
from .services.raffle import Clock, Raffle, system_clock
from .services.signatures import EntryAuthenticator

EXTENSION_KEY = "raffle"


@dataclass
class RaffleServices:
    settings: AppSettings
    database: Database
    ledger: AccountLedger
    coordinator: LocalVRFCoordinator
    raffle: Raffle
    authenticator: EntryAuthenticator


def build_services(settings: AppSettings, clock: Clock = system_clock) -> RaffleServices:
    database = Database(settings.database_url)
    database.create_all()
    ledger = AccountLedger()
    coordinator = LocalVRFCoordinator(database, settings.vrf.coordinator_address)
    raffle = Raffle(
        database,
        coordinator,
        settings.raffle,
        settings.vrf,
        ledger=ledger,
        clock=clock,
    )
    coordinator.add_consumer(raffle)
    return RaffleServices(
        settings=settings,
        database=database,
        ledger=ledger,
        coordinator=coordinator,
        raffle=raffle,
        authenticator=EntryAuthenticator(raffle.address, ledger),
    )


def get_services() -> RaffleServices:
    return current_app.extensions[EXTENSION_KEY]
