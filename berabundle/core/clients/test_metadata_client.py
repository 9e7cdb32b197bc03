import httpx
import pytest

from berabundle.core.clients.MetadataClient import (
    MetadataClient,
    MetadataUnavailableError,
)

MIRROR_A = "https://mirror-a.example/src"
MIRROR_B = "https://mirror-b.example/src"
VAULT = "0x1111111111111111111111111111111111111111"
STAKE = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"


def _client(handler) -> MetadataClient:
    return MetadataClient(
        [MIRROR_A, MIRROR_B],
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_falls_back_to_next_mirror():
    hosts = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "mirror-a.example":
            return httpx.Response(404)
        return httpx.Response(
            200,
            json={
                "vaults": [
                    {
                        "vaultAddress": VAULT,
                        "name": "HONEY-WBERA",
                        "protocol": "BEX",
                        "stakingTokenAddress": STAKE,
                    },
                    {"address": "not-an-address"},
                ]
            },
        )

    vaults = await _client(handler).get_vaults()

    assert hosts == ["mirror-a.example", "mirror-b.example"]
    assert vaults == [
        {
            "address": VAULT,
            "name": "HONEY-WBERA",
            "protocol": "BEX",
            "stake_token": STAKE,
            "reward_token": None,
        }
    ]


@pytest.mark.asyncio
async def test_all_mirrors_failing_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": []})

    with pytest.raises(MetadataUnavailableError, match="validators"):
        await _client(handler).get_validators()


@pytest.mark.asyncio
async def test_validators_and_tokens():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/validators/mainnet.json"):
            return httpx.Response(
                200,
                json={"validators": [{"id": "0xabcd", "name": "Val 1"}, {"id": "bad"}]},
            )
        return httpx.Response(
            200,
            json={
                "tokens": [
                    {"address": TOKEN, "symbol": "iBGT", "name": "Infrared BGT", "decimals": 18},
                    {"address": "0x12", "symbol": "BAD"},
                ]
            },
        )

    client = _client(handler)
    assert await client.get_validators() == [{"pubkey": "0xabcd", "name": "Val 1"}]
    assert await client.get_tokens() == {
        TOKEN.lower(): {"symbol": "iBGT", "name": "Infrared BGT", "decimals": 18}
    }
