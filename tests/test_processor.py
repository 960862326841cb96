"""
Test the job processor end to end against the chain, KMS and exchange doubles.
"""

import json
import uuid

import pytest
from web3 import Web3

from blockchain_service.blockchain.abis import ASSET_REGISTRY_ABI, FACTORY_ABI, ContractName
from blockchain_service.models.blockchain_job import BlockchainJobStatus, ChainEventType
from blockchain_service.schemas.events import format_timestamp
from blockchain_service.schemas.payloads import ZERO_ADDRESS

from tests.conftest import EMPTY_ORG_ID, ORG_ID, SITE_ADDRESS
from tests.fakes import (
    ADMIN_ADDRESS,
    ASSET_REGISTRY_ADDRESS,
    DISTRIBUTOR_ADDRESS,
    FACTORY_ADDRESS,
    FAUCET_ADDRESS,
    LICENSE_MANAGER_ADDRESS,
    ORG_CONTRACT_ADDRESS,
    USER_ADDRESS,
    VERIFIER_ADDRESS,
    action,
    encode_event_log,
)


NEW_ORG_CONTRACT = Web3.to_checksum_address("0x" + "ab" * 20)
RECIPIENT = Web3.to_checksum_address("0x" + "cd" * 20)
ASSET_HASH = "0x" + "11" * 32


async def create_job(repository, event_type, payload):
    return await repository.create(
        idempotency_key=str(uuid.uuid4()),
        event_type=event_type,
        payload=payload,
    )


def published_events(exchange):
    return [(message.routing_key, json.loads(message.body)) for message in exchange.published]


def create_asset_payload(**overrides):
    payload = {
        "txId": "tx-asset-1",
        "userId": "user-1",
        "siteAddress": SITE_ADDRESS,
        "assetCID": "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",
        "metadataHash": "QmMetadata",
        "assetHash": ASSET_HASH,
        "price": 250_000_000,
        "isEncrypted": False,
        "canBeLicensed": True,
        "fxPool": "PII",
        "timeStamp": 1_700_000_000,
        "assetType": "Mineral",
        "basin": "Permian",
        "acreage": 640,
    }
    payload.update(overrides)
    return payload


def asset_registered_log(asset_id=42):
    return encode_event_log(
        ASSET_REGISTRY_ABI,
        "AssetRegistered",
        ASSET_REGISTRY_ADDRESS,
        orgContract=ORG_CONTRACT_ADDRESS,
        assetId=asset_id,
        creator=USER_ADDRESS,
        assetHash=bytes.fromhex("11" * 32),
    )


def license_payload(**overrides):
    payload = {
        "txId": "tx-license-1",
        "userId": "user-1",
        "siteAddress": SITE_ADDRESS,
        "onChainAssetId": 42,
        "price": 5_000_000,
        "permissions": ["View", 1],
        "resellerFee": 250,
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_every_event_type_has_a_handler(processor):
    """Dispatch table covers the whole event type enumeration."""
    assert set(processor._event_handlers) == set(ChainEventType)


@pytest.mark.asyncio
async def test_create_asset_success(processor, job_repository, chain, exchange):
    """CREATE_ASSET reaches SUCCESS and carries the registry-assigned asset id."""
    chain.receipt_logs[action(ContractName.ORG_CONTRACT, "createAsset")] = [asset_registered_log(42)]
    job = await create_job(job_repository, ChainEventType.CREATE_ASSET, create_asset_payload())

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.SUCCESS
    assert stored.error_message is None
    assert stored.finalized_at is not None
    assert stored.retry_count == 1

    [sent] = chain.sent
    assert sent.sender == USER_ADDRESS
    args = sent.args
    assert args[0] == create_asset_payload()["assetCID"]
    assert args[2] == bytes.fromhex("11" * 32)
    assert args[6] == 1  # PII
    assert args[8] == []  # geo restrictions
    assert args[9:12] == (2, 0, 0)  # Mineral, default category, default status
    assert args[12:] == ("Permian", 640, "", "", "", 0)

    [(routing_key, body)] = published_events(exchange)
    assert routing_key == "transactions.finalized.confirmed"
    assert body["finalStatus"] == "CONFIRMED"
    assert body["eventOutput"] == {"onChainAssetId": "42"}
    assert body["txHash"] == sent.tx_hash
    assert body["blockNumber"] == str(chain.block_number)
    assert body["id"] == "tx-asset-1"
    assert body["jobId"] == job.id
    assert body["eventType"] == "CREATE_ASSET"
    assert body["error"] is None
    assert body["originalPayload"] == stored.payload_json
    assert body["submittedAt"] == format_timestamp(stored.created_at)
    assert body["finalizedAt"] == format_timestamp(stored.finalized_at)


@pytest.mark.asyncio
async def test_create_asset_missing_log_fails_job(processor, job_repository, chain, exchange):
    """A mined receipt without AssetRegistered is a hard failure."""
    job = await create_job(job_repository, ChainEventType.CREATE_ASSET, create_asset_payload())

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert "AssetRegistered" in stored.error_message

    [(routing_key, body)] = published_events(exchange)
    assert routing_key == "transactions.finalized.failed"
    assert body["finalStatus"] == "FAILED"
    assert body["txHash"] == "unknown"
    assert body["blockNumber"] == "unknown"
    assert body["eventOutput"] == {}
    assert body["error"] == stored.error_message


@pytest.mark.asyncio
async def test_create_asset_unknown_site_fails_without_kms(processor, job_repository, kms, exchange):
    job = await create_job(
        job_repository,
        ChainEventType.CREATE_ASSET,
        create_asset_payload(siteAddress="unknown.example"),
    )

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert kms.requests == []
    assert published_events(exchange)[0][0] == "transactions.finalized.failed"


@pytest.mark.asyncio
async def test_invalid_payload_fails_job(processor, job_repository, chain, exchange):
    """Payload shape is checked before any chain call."""
    job = await create_job(job_repository, ChainEventType.CREATE_ASSET, {"txId": "tx-bad", "userId": "user-1"})

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert stored.error_message.startswith("Invalid payload for CREATE_ASSET")
    assert chain.sent == []
    assert published_events(exchange)[0][1]["id"] == "tx-bad"


@pytest.mark.asyncio
async def test_license_with_sufficient_allowance_skips_approve(processor, job_repository, chain, kms):
    chain.pending_nonces[USER_ADDRESS] = 7
    chain.call_results[action(ContractName.ORG_CONTRACT, "licenseManager")] = LICENSE_MANAGER_ADDRESS
    chain.call_results[action(ContractName.STABLECOIN, "allowance")] = 10**12
    job = await create_job(job_repository, ChainEventType.LICENSE_ASSET, license_payload())

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.SUCCESS

    [license_tx] = chain.sent
    assert license_tx.description == action(ContractName.ORG_CONTRACT, "licenseAsset")
    assert license_tx.nonce == 7
    assert license_tx.args == (42, [0, 1], 250)
    assert chain.sent_by(action(ContractName.STABLECOIN, "approve")) == []
    assert chain.nonce_queries == 1
    assert kms.open_scopes == 0


@pytest.mark.asyncio
async def test_license_with_short_allowance_approves_then_licenses(processor, job_repository, chain, exchange):
    """Approve and license use consecutive nonces from a single query."""
    chain.pending_nonces[USER_ADDRESS] = 3
    chain.call_results[action(ContractName.ORG_CONTRACT, "licenseManager")] = LICENSE_MANAGER_ADDRESS
    chain.call_results[action(ContractName.STABLECOIN, "allowance")] = 1_000
    job = await create_job(job_repository, ChainEventType.LICENSE_ASSET, license_payload())

    await processor.process({"jobId": job.id})

    approve_tx, license_tx = chain.sent
    assert approve_tx.description == action(ContractName.STABLECOIN, "approve")
    assert approve_tx.args == (LICENSE_MANAGER_ADDRESS, 5_000_000)
    assert approve_tx.nonce == 3
    assert license_tx.nonce == approve_tx.nonce + 1
    assert chain.nonce_queries == 1

    allowance_calls = [args for key, args in chain.calls if key == action(ContractName.STABLECOIN, "allowance")]
    assert allowance_calls == [(USER_ADDRESS, LICENSE_MANAGER_ADDRESS)]

    [(_, body)] = published_events(exchange)
    assert body["txHash"] == license_tx.tx_hash


@pytest.mark.asyncio
async def test_license_approve_revert_stops_sequence(processor, job_repository, chain):
    chain.call_results[action(ContractName.ORG_CONTRACT, "licenseManager")] = LICENSE_MANAGER_ADDRESS
    chain.call_results[action(ContractName.STABLECOIN, "allowance")] = 0
    chain.reverting.add(action(ContractName.STABLECOIN, "approve"))
    job = await create_job(job_repository, ChainEventType.LICENSE_ASSET, license_payload())

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert stored.error_message.startswith("Transaction to approve license payment reverted")
    assert len(chain.sent) == 1


@pytest.mark.asyncio
async def test_fund_user_wallet_sequences_nonces(processor, job_repository, chain, exchange):
    chain.pending_nonces[FAUCET_ADDRESS] = 11
    job = await create_job(
        job_repository,
        ChainEventType.FUND_USER_WALLET,
        {"txId": "tx-fund-1", "recipientAddress": RECIPIENT.lower()},
    )

    await processor.process({"jobId": job.id})

    native_tx, usdc_tx = chain.sent
    assert native_tx.description == "native transfer"
    assert native_tx.sender == FAUCET_ADDRESS
    assert native_tx.value == 10**18
    assert native_tx.nonce == 11
    assert usdc_tx.description == action(ContractName.STABLECOIN, "transfer")
    assert usdc_tx.sender == FAUCET_ADDRESS
    assert usdc_tx.args == (RECIPIENT, 1_000_000_000)
    assert usdc_tx.nonce == 12
    assert chain.nonce_queries == 1

    [(routing_key, body)] = published_events(exchange)
    assert routing_key == "transactions.finalized.confirmed"
    assert body["txHash"] == usdc_tx.tx_hash


@pytest.mark.asyncio
async def test_job_is_submitted_before_first_chain_transaction(processor, job_repository, chain):
    job = await create_job(
        job_repository,
        ChainEventType.FUND_USER_WALLET,
        {"txId": "tx-fund-2", "recipientAddress": RECIPIENT},
    )
    seen_statuses = []

    async def record_status():
        stored = await job_repository.find_by_id(job.id)
        seen_statuses.append((stored.status, stored.retry_count))

    chain.before_submit = record_status

    await processor.process({"jobId": job.id})

    assert seen_statuses == [
        (BlockchainJobStatus.SUBMITTED, 1),
        (BlockchainJobStatus.SUBMITTED, 1),
    ]
    assert (await job_repository.find_by_id(job.id)).status == BlockchainJobStatus.SUCCESS


@pytest.mark.asyncio
async def test_create_org_contract_grants_verifier(processor, job_repository, chain, exchange):
    chain.receipt_logs[action(ContractName.FACTORY, "createOrgContract")] = [
        encode_event_log(
            FACTORY_ABI,
            "OrgContractCreated",
            FACTORY_ADDRESS,
            orgContract=NEW_ORG_CONTRACT,
            principal=USER_ADDRESS,
            integrationPartner=ZERO_ADDRESS,
        )
    ]
    job = await create_job(job_repository, ChainEventType.CREATE_ORG_CONTRACT, {
        "txId": "tx-org-1",
        "organizationId": ORG_ID,
        "principalUserId": "principal-1",
        "principalWalletAddress": USER_ADDRESS,
        "platformVerifierWalletAddress": VERIFIER_ADDRESS,
    })

    await processor.process({"jobId": job.id})

    create_tx, grant_tx = chain.sent
    assert create_tx.sender == ADMIN_ADDRESS
    assert create_tx.args == (USER_ADDRESS, ZERO_ADDRESS)
    assert grant_tx.description == action(ContractName.ORG_CONTRACT, "addCreator")
    assert grant_tx.sender == USER_ADDRESS
    assert grant_tx.args == (VERIFIER_ADDRESS,)

    [(_, body)] = published_events(exchange)
    assert body["finalStatus"] == "CONFIRMED"
    assert body["txHash"] == create_tx.tx_hash
    assert body["eventOutput"] == {"contractAddress": NEW_ORG_CONTRACT}


@pytest.mark.asyncio
async def test_create_org_contract_absorbs_verifier_grant_failure(processor, job_repository, chain, kms, exchange):
    """The org contract exists on-chain, so a failed verifier grant does not fail the job."""
    chain.receipt_logs[action(ContractName.FACTORY, "createOrgContract")] = [
        encode_event_log(
            FACTORY_ABI,
            "OrgContractCreated",
            FACTORY_ADDRESS,
            orgContract=NEW_ORG_CONTRACT,
            principal=USER_ADDRESS,
            integrationPartner=ZERO_ADDRESS,
        )
    ]
    chain.reverting.add(action(ContractName.ORG_CONTRACT, "addCreator"))
    job = await create_job(job_repository, ChainEventType.CREATE_ORG_CONTRACT, {
        "txId": "tx-org-2",
        "organizationId": ORG_ID,
        "principalUserId": "principal-1",
        "principalWalletAddress": USER_ADDRESS,
        "platformVerifierWalletAddress": VERIFIER_ADDRESS,
    })

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.SUCCESS
    [(_, body)] = published_events(exchange)
    assert body["eventOutput"] == {"contractAddress": NEW_ORG_CONTRACT}
    assert body["txHash"] == chain.sent[0].tx_hash


@pytest.mark.asyncio
async def test_create_org_contract_fails_when_principal_key_unavailable(processor, job_repository, chain, kms, exchange):
    """Only a mined revert of the grant is absorbed."""
    chain.receipt_logs[action(ContractName.FACTORY, "createOrgContract")] = [
        encode_event_log(
            FACTORY_ABI,
            "OrgContractCreated",
            FACTORY_ADDRESS,
            orgContract=NEW_ORG_CONTRACT,
            principal=USER_ADDRESS,
            integrationPartner=ZERO_ADDRESS,
        )
    ]
    job = await create_job(job_repository, ChainEventType.CREATE_ORG_CONTRACT, {
        "txId": "tx-org-3",
        "organizationId": ORG_ID,
        "principalUserId": "no-such-user",
        "principalWalletAddress": USER_ADDRESS,
        "platformVerifierWalletAddress": VERIFIER_ADDRESS,
    })

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert stored.error_message == "Failed to retrieve private key for user no-such-user: 404"
    assert len(chain.sent) == 1
    assert kms.requests == ["user:no-such-user"]
    [(routing_key, body)] = published_events(exchange)
    assert routing_key == "transactions.finalized.failed"
    assert body["txHash"] == "unknown"


@pytest.mark.asyncio
async def test_create_org_contract_without_verifier_sends_one_transaction(processor, job_repository, chain, kms):
    chain.receipt_logs[action(ContractName.FACTORY, "createOrgContract")] = [
        encode_event_log(
            FACTORY_ABI,
            "OrgContractCreated",
            FACTORY_ADDRESS,
            orgContract=NEW_ORG_CONTRACT,
            principal=USER_ADDRESS,
            integrationPartner=ZERO_ADDRESS,
        )
    ]
    job = await create_job(job_repository, ChainEventType.CREATE_ORG_CONTRACT, {
        "txId": "tx-org-4",
        "organizationId": ORG_ID,
        "principalUserId": "principal-1",
        "principalWalletAddress": USER_ADDRESS,
        "platformVerifierWalletAddress": ZERO_ADDRESS,
    })

    await processor.process({"jobId": job.id})

    assert len(chain.sent) == 1
    assert kms.requests == []


@pytest.mark.asyncio
async def test_create_org_contract_missing_log_fails(processor, job_repository, chain, exchange):
    job = await create_job(job_repository, ChainEventType.CREATE_ORG_CONTRACT, {
        "txId": "tx-org-5",
        "organizationId": ORG_ID,
        "principalUserId": "principal-1",
        "principalWalletAddress": USER_ADDRESS,
    })

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert "OrgContractCreated" in stored.error_message
    assert published_events(exchange)[0][1]["eventOutput"] == {}


@pytest.mark.asyncio
async def test_grant_creator_role_as_admin(processor, job_repository, chain):
    job = await create_job(job_repository, ChainEventType.GRANT_CREATOR_ROLE, {
        "txId": "tx-grant-1",
        "organizationId": ORG_ID,
        "userWalletAddress": RECIPIENT,
    })

    await processor.process({"jobId": job.id})

    [tx] = chain.sent
    assert tx.description == action(ContractName.ORG_CONTRACT, "addCreator")
    assert tx.sender == ADMIN_ADDRESS
    assert tx.args == (RECIPIENT,)


@pytest.mark.asyncio
async def test_revoke_creator_role_revert_fails_job(processor, job_repository, chain, exchange):
    chain.reverting.add(action(ContractName.ORG_CONTRACT, "removeCreator"))
    job = await create_job(job_repository, ChainEventType.REVOKE_CREATOR_ROLE, {
        "txId": "tx-revoke-1",
        "organizationId": ORG_ID,
        "userWalletAddress": RECIPIENT,
    })

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert stored.error_message == (
        f"Transaction to revoke creator role reverted. Hash: {chain.sent[0].tx_hash}"
    )
    [(routing_key, _)] = published_events(exchange)
    assert routing_key == "transactions.finalized.failed"


@pytest.mark.asyncio
async def test_role_change_for_org_without_contract_fails(processor, job_repository, chain):
    job = await create_job(job_repository, ChainEventType.GRANT_CREATOR_ROLE, {
        "txId": "tx-grant-2",
        "organizationId": EMPTY_ORG_ID,
        "userWalletAddress": RECIPIENT,
    })

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.ERROR
    assert stored.error_message == f"Organization {EMPTY_ORG_ID} does not have a contract address."
    assert chain.sent == []


@pytest.mark.asyncio
async def test_withdraw_org_earnings_as_principal(processor, job_repository, chain):
    chain.call_results[action(ContractName.ORG_CONTRACT, "revenueDistributor")] = DISTRIBUTOR_ADDRESS
    job = await create_job(job_repository, ChainEventType.WITHDRAW_ORG_EARNINGS, {
        "txId": "tx-withdraw-1",
        "organizationId": ORG_ID,
        "principalUserId": "principal-1",
    })

    await processor.process({"jobId": job.id})

    [tx] = chain.sent
    assert tx.description == action(ContractName.REVENUE_DISTRIBUTOR, "withdrawAllOrgEarnings")
    assert tx.sender == USER_ADDRESS
    assert tx.args == (ORG_CONTRACT_ADDRESS,)


@pytest.mark.asyncio
async def test_verify_asset_as_platform_verifier(processor, job_repository, chain, kms):
    job = await create_job(job_repository, ChainEventType.VERIFY_ASSET, {
        "txId": "tx-verify-1",
        "siteAddress": SITE_ADDRESS,
        "onChainAssetId": "7",
    })

    await processor.process({"jobId": job.id})

    [tx] = chain.sent
    assert tx.description == action(ContractName.ORG_CONTRACT, "verifyAsset")
    assert tx.sender == VERIFIER_ADDRESS
    assert tx.args == (7,)
    assert kms.requests == ["verifier"]
    assert kms.open_scopes == 0


@pytest.mark.asyncio
async def test_redelivered_terminal_job_is_not_reprocessed(processor, job_repository, chain, exchange):
    """Exactly one finalized event per job even when the message is redelivered."""
    job = await create_job(job_repository, ChainEventType.GRANT_CREATOR_ROLE, {
        "txId": "tx-grant-3",
        "organizationId": ORG_ID,
        "userWalletAddress": RECIPIENT,
    })

    await processor.process({"jobId": job.id})
    await processor.process({"jobId": job.id})

    assert len(chain.sent) == 1
    assert len(exchange.published) == 1
    stored = await job_repository.find_by_id(job.id)
    assert stored.retry_count == 1


@pytest.mark.asyncio
async def test_unknown_job_is_dropped(processor, chain, exchange):
    await processor.process({"jobId": str(uuid.uuid4())})
    await processor.process({})

    assert chain.sent == []
    assert exchange.published == []


@pytest.mark.asyncio
async def test_publish_failure_keeps_terminal_status(processor, job_repository, exchange):
    exchange.fail_with = ConnectionError("channel closed")
    job = await create_job(job_repository, ChainEventType.GRANT_CREATOR_ROLE, {
        "txId": "tx-grant-4",
        "organizationId": ORG_ID,
        "userWalletAddress": RECIPIENT,
    })

    await processor.process({"jobId": job.id})

    stored = await job_repository.find_by_id(job.id)
    assert stored.status == BlockchainJobStatus.SUCCESS
    assert exchange.published == []
