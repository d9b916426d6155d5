import json
import unittest

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from backend.app import create_app
from backend.config import AppSettings, RaffleSettings

ENTRANCE_FEE = Web3.to_wei("0.01", "ether")
PLAYER_ACCOUNT = Account.from_key("0x" + "11" * 32)
OTHER_ACCOUNT = Account.from_key("0x" + "22" * 32)
RAFFLE_ACCOUNT = Account.from_key("0x" + "33" * 32)
PLAYER = PLAYER_ACCOUNT.address
OTHER = OTHER_ACCOUNT.address
ACCOUNTS = {acct.address: acct for acct in (PLAYER_ACCOUNT, OTHER_ACCOUNT, RAFFLE_ACCOUNT)}


class FakeClock:
    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class RaffleRoutesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        settings = AppSettings(
            raffle=RaffleSettings(
                entrance_fee=ENTRANCE_FEE, interval_seconds=30, address=RAFFLE_ACCOUNT.address
            ),
            database_url="sqlite://",
            admin_api_key="test-admin",
            oracle_api_key="test-oracle",
        )
        self.app = create_app(settings, clock=self.clock)
        self.client = self.app.test_client()

        for address in (PLAYER, OTHER):
            resp = self.client.post(
                f"/admin/api/accounts/{address}/fund",
                headers=self._admin_headers(),
                data=json.dumps({"amount_wei": Web3.to_wei(1, "ether")}),
                content_type="application/json",
            )
            self.assertEqual(resp.status_code, 200)

    def _admin_headers(self):
        return {"X-Admin-Token": "test-admin"}

    def _oracle_headers(self):
        return {"X-Oracle-Token": "test-oracle"}

    def _signed_entry(self, sender: str, value: int, signer=None) -> dict:
        resp = self.client.get("/raffle/entry-message", query_string={"sender": sender, "value": value})
        self.assertEqual(resp.status_code, 200)
        signer = signer or ACCOUNTS[sender]
        signed = signer.sign_message(encode_defunct(text=resp.get_json()["message"]))
        return {"sender": sender, "value": value, "signature": signed.signature.hex()}

    def _post_entry(self, payload: dict):
        return self.client.post(
            "/raffle/enter",
            data=json.dumps(payload),
            content_type="application/json",
        )

    def _enter(self, sender: str, value: int):
        return self._post_entry(self._signed_entry(sender, value))

    def _nonce(self, sender: str) -> int:
        resp = self.client.get("/raffle/entry-message", query_string={"sender": sender, "value": 0})
        return resp.get_json()["nonce"]

    def test_health_and_config(self) -> None:
        self.assertEqual(self.client.get("/health").get_json(), {"status": "ok"})

        config = self.client.get("/config").get_json()
        self.assertEqual(config["entrance_fee_wei"], str(ENTRANCE_FEE))
        self.assertEqual(config["entrance_fee_ether"], "0.01")
        self.assertEqual(config["interval_seconds"], 30)
        self.assertEqual(config["vrf"]["num_words"], 1)
        self.assertFalse(config["vrf"]["native_payment"])

    def test_enter_raffle(self) -> None:
        resp = self._enter(PLAYER, ENTRANCE_FEE)

        self.assertEqual(resp.status_code, 201)
        payload = resp.get_json()
        self.assertEqual(payload["state"], "OPEN")
        self.assertEqual(payload["player_count"], 1)
        self.assertEqual(payload["balance_wei"], str(ENTRANCE_FEE))

        player_resp = self.client.get("/raffle/players/0")
        self.assertEqual(player_resp.get_json()["player"], PLAYER)
        self.assertEqual(self.client.get("/raffle/players/1").status_code, 404)

    def test_enter_with_insufficient_payment(self) -> None:
        resp = self._enter(PLAYER, ENTRANCE_FEE - 1)

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "Raffle__SendMoreToEnterRaffle")
        self.assertEqual(self.client.get("/raffle").get_json()["player_count"], 0)

    def test_enter_with_invalid_payload(self) -> None:
        resp = self._post_entry({"sender": "not-an-address", "value": ENTRANCE_FEE, "signature": "0x00"})
        self.assertEqual(resp.status_code, 422)

    def test_perform_upkeep_not_needed(self) -> None:
        self._enter(PLAYER, ENTRANCE_FEE)

        self.assertFalse(self.client.get("/raffle/upkeep").get_json()["upkeep_needed"])
        resp = self.client.post("/raffle/upkeep")

        self.assertEqual(resp.status_code, 409)
        payload = resp.get_json()
        self.assertEqual(payload["error"], "Raffle__UpkeepNotNeeded")
        self.assertEqual(payload["balance"], str(ENTRANCE_FEE))
        self.assertEqual(payload["players"], 1)
        self.assertEqual(payload["state"], "OPEN")

    def test_full_round_over_http(self) -> None:
        self._enter(PLAYER, ENTRANCE_FEE)
        self._enter(OTHER, ENTRANCE_FEE)
        self.clock.now += 31

        self.assertTrue(self.client.get("/raffle/upkeep").get_json()["upkeep_needed"])
        upkeep = self.client.post("/raffle/upkeep")
        self.assertEqual(upkeep.status_code, 202)
        request_id = upkeep.get_json()["request_id"]
        self.assertEqual(upkeep.get_json()["state"], "CALCULATING")

        closed = self._enter(PLAYER, ENTRANCE_FEE)
        self.assertEqual(closed.status_code, 409)
        self.assertEqual(closed.get_json()["error"], "Raffle__RaffleNotOpen")

        pending = self.client.get("/oracle/requests", headers=self._oracle_headers()).get_json()
        self.assertEqual([r["request_id"] for r in pending], [request_id])

        fulfilled = self.client.post(
            f"/oracle/requests/{request_id}/fulfill",
            headers=self._oracle_headers(),
            data=json.dumps({"random_words": [3]}),
            content_type="application/json",
        )
        self.assertEqual(fulfilled.status_code, 200)
        self.assertEqual(fulfilled.get_json()["recent_winner"], OTHER)
        self.assertEqual(fulfilled.get_json()["state"], "OPEN")

        account = self.client.get(f"/admin/api/accounts/{OTHER}", headers=self._admin_headers())
        self.assertEqual(account.get_json()["balance_wei"], str(Web3.to_wei(1, "ether") + ENTRANCE_FEE))

        rounds = self.client.get("/raffle/rounds").get_json()
        self.assertEqual(len(rounds), 1)
        self.assertEqual(rounds[0]["winner"], OTHER)

        again = self.client.post(
            f"/oracle/requests/{request_id}/fulfill",
            headers=self._oracle_headers(),
            data=json.dumps({"random_words": [3]}),
            content_type="application/json",
        )
        self.assertEqual(again.status_code, 404)

    def test_failed_payout_over_http(self) -> None:
        self._enter(PLAYER, ENTRANCE_FEE)
        self.client.put(
            f"/admin/api/accounts/{PLAYER}/payable",
            headers=self._admin_headers(),
            data=json.dumps({"payable": False}),
            content_type="application/json",
        )
        self.clock.now += 31
        request_id = self.client.post("/raffle/upkeep").get_json()["request_id"]

        resp = self.client.post(
            f"/oracle/requests/{request_id}/fulfill",
            headers=self._oracle_headers(),
            data=json.dumps({"random_words": [0]}),
            content_type="application/json",
        )

        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.get_json()["error"], "Raffle__TransferFailed")
        state = self.client.get("/raffle").get_json()
        self.assertEqual(state["state"], "CALCULATING")
        self.assertEqual(state["balance_wei"], str(ENTRANCE_FEE))

    def test_oracle_endpoints_require_token(self) -> None:
        self.assertEqual(self.client.get("/oracle/requests").status_code, 401)
        resp = self.client.post(
            "/oracle/requests/1/fulfill",
            headers={"X-Oracle-Token": "wrong"},
            data=json.dumps({"random_words": [1]}),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 401)

    def test_fulfill_rejects_wrong_word_count(self) -> None:
        self._enter(PLAYER, ENTRANCE_FEE)
        self.clock.now += 31
        request_id = self.client.post("/raffle/upkeep").get_json()["request_id"]

        resp = self.client.post(
            f"/oracle/requests/{request_id}/fulfill",
            headers=self._oracle_headers(),
            data=json.dumps({"random_words": [1, 2]}),
            content_type="application/json",
        )

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "VRF__InvalidRandomWords")

    def test_entry_signed_by_someone_else_is_rejected(self) -> None:
        forged = self._signed_entry(PLAYER, ENTRANCE_FEE, signer=OTHER_ACCOUNT)

        resp = self._post_entry(forged)

        self.assertEqual(resp.status_code, 401)
        payload = resp.get_json()
        self.assertEqual(payload["error"], "Raffle__InvalidSignature")
        self.assertEqual(payload["signer"], OTHER)
        self.assertEqual(self.client.get("/raffle").get_json()["player_count"], 0)
        account = self.client.get(f"/admin/api/accounts/{PLAYER}", headers=self._admin_headers())
        self.assertEqual(account.get_json()["balance_wei"], str(Web3.to_wei(1, "ether")))

    def test_entry_without_valid_signature_is_rejected(self) -> None:
        resp = self._post_entry({"sender": PLAYER, "value": ENTRANCE_FEE, "signature": "0x1234"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(self.client.get("/raffle").get_json()["player_count"], 0)

    def test_signed_entry_cannot_be_replayed(self) -> None:
        entry = self._signed_entry(PLAYER, ENTRANCE_FEE)

        self.assertEqual(self._post_entry(entry).status_code, 201)
        replay = self._post_entry(entry)

        self.assertEqual(replay.status_code, 401)
        self.assertEqual(self.client.get("/raffle").get_json()["player_count"], 1)
        self.assertEqual(self._nonce(PLAYER), 1)

    def test_rejected_entry_keeps_nonce(self) -> None:
        resp = self._enter(PLAYER, ENTRANCE_FEE - 1)

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self._nonce(PLAYER), 0)

    def test_raffle_cannot_enter_itself(self) -> None:
        self.client.post(
            f"/admin/api/accounts/{RAFFLE_ACCOUNT.address}/fund",
            headers=self._admin_headers(),
            data=json.dumps({"amount_wei": ENTRANCE_FEE}),
            content_type="application/json",
        )
        self._enter(PLAYER, ENTRANCE_FEE)

        resp = self._enter(RAFFLE_ACCOUNT.address, ENTRANCE_FEE)

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "Raffle__InvalidAddress")
        state = self.client.get("/raffle").get_json()
        self.assertEqual(state["player_count"], 1)
        self.assertEqual(state["balance_wei"], str(ENTRANCE_FEE * 2))
        self.assertEqual(self._nonce(RAFFLE_ACCOUNT.address), 0)

    def test_admin_requires_token(self) -> None:
        resp = self.client.get(f"/admin/api/accounts/{PLAYER}")
        self.assertEqual(resp.status_code, 401)
        wrong = self.client.get(f"/admin/api/accounts/{PLAYER}", headers={"X-Admin-Token": "nope"})
        self.assertEqual(wrong.status_code, 401)

    def test_admin_is_closed_without_configured_key(self) -> None:
        app = create_app(
            AppSettings(database_url="sqlite://", oracle_api_key="test-oracle"),
            clock=self.clock,
        )
        client = app.test_client()

        fund = client.post(
            f"/admin/api/accounts/{PLAYER}/fund",
            data=json.dumps({"amount_wei": 10**30}),
            content_type="application/json",
        )
        payable = client.put(
            f"/admin/api/accounts/{PLAYER}/payable",
            data=json.dumps({"payable": False}),
            content_type="application/json",
        )

        self.assertEqual(fund.status_code, 401)
        self.assertEqual(payable.status_code, 401)


if __name__ == "__main__":
    unittest.main()
