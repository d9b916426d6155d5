import asyncio
import unittest
from unittest import mock

from oracle.entropy import HttpBeaconSource, HttpBeaconSourceConfig, SystemEntropySource
from oracle.entropy.base import RandomWord

DRAND_RANDOMNESS = "a" * 64


def _response(payload):
    resp = mock.Mock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


class SystemEntropyTests(unittest.TestCase):
    def test_words_fit_in_uint256(self) -> None:
        word = asyncio.run(SystemEntropySource().next_word())
        self.assertGreaterEqual(word.value, 0)
        self.assertLess(word.value, 2**256)
        self.assertEqual(word.origin, "system")

    def test_random_word_rejects_out_of_range(self) -> None:
        with self.assertRaises(ValueError):
            RandomWord(value=2**256, origin="test")


class HttpBeaconSourceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.source = HttpBeaconSource(HttpBeaconSourceConfig(url="http://beacon.test/public/latest"))

    @mock.patch("oracle.entropy.http_beacon.requests.get")
    def test_parses_drand_payload(self, mock_get) -> None:
        mock_get.return_value = _response({"round": 100, "randomness": DRAND_RANDOMNESS})

        word = asyncio.run(self.source.next_word())

        self.assertEqual(word.value, int(DRAND_RANDOMNESS, 16))
        self.assertEqual(word.round, 100)
        mock_get.assert_called_once_with("http://beacon.test/public/latest", timeout=10)

    @mock.patch("oracle.entropy.http_beacon.requests.get")
    def test_refuses_to_reuse_a_round(self, mock_get) -> None:
        mock_get.return_value = _response({"round": 100, "randomness": DRAND_RANDOMNESS})
        asyncio.run(self.source.next_word())

        with self.assertRaises(RuntimeError):
            asyncio.run(self.source.next_word())

        mock_get.return_value = _response({"round": 101, "randomness": "0x01"})
        self.assertEqual(asyncio.run(self.source.next_word()).value, 1)

    @mock.patch("oracle.entropy.http_beacon.requests.get")
    def test_rejects_malformed_payloads(self, mock_get) -> None:
        for payload in (
            {"round": 1},
            {"round": 1, "randomness": 12},
            {"round": 1, "randomness": "zz"},
            {"round": 1, "randomness": "f" * 66},
            {"round": "1", "randomness": "ff"},
        ):
            mock_get.return_value = _response(payload)
            with self.assertRaises(ValueError):
                asyncio.run(self.source.next_word())


if __name__ == "__main__":
    unittest.main()
