"""Scroll system contract addresses, ABI fragments and event signatures."""

from __future__ import annotations

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_L2_PREDEPLOYS = {
    "l2_message_queue": "0x5300000000000000000000000000000000000000",
    "l1_gas_price_oracle": "0x5300000000000000000000000000000000000002",
    "whitelist": "0x5300000000000000000000000000000000000003",
    "l2_tx_fee_vault": "0x5300000000000000000000000000000000000005",
}
_SHARED = {
    "multicall3": "0xcA11bde05977b3631167028862bE2a173976CA11",
    "entry_point": "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789",
}

CONTRACT_ADDRESSES: dict[str, dict[str, str]] = {
    "mainnet": {
        "scroll_chain": "0xa13BAF47339d63B743e7Da8741db5456DAc1E556",
        "l1_message_queue": "0x0d7E906BD9cAFa154b048cFa766Cc1E54E39AF9B",
        "l1_scroll_messenger": "0x6774Bcbd5ceCeF1336b5300fb5186a12DDD8b367",
        "l1_gateway_router": "0xF8B1378579659D8F7EE5f3C929c2f3E332E41Fd6",
        "l1_eth_gateway": "0x7F2b8C31F88B6006c382775eea88297Ec1e3E905",
        "l1_standard_erc20_gateway": "0xD8A791fE2bE73eb6E6cF1eb0cb3F36adC9B3F8f9",
        "l1_custom_erc20_gateway": "0xb2b10a289A229415a124EFDeF310C10cb004B6ff",
        "l1_erc721_gateway": "0x6260aF48e8948617b8FA17F4e5CEa2571f7EaFCc",
        "l1_erc1155_gateway": "0xb94f7F6ABcb811c5Ac709dE14E37590fcCd975B6",
        "l1_weth_gateway": "0x7AC440cAe8EB6328de4fA621163a792c1EA9D4fE",
        "l2_scroll_messenger": "0x781e90f1c8Fc4611c9b7497C3B47F99Ef6969CbC",
        "l2_gateway_router": "0x4C0926FF5252A435FD19e10ED15e5a249Ba19d79",
        "l2_eth_gateway": "0x6EA73e05AdC79974B931123675ea8F78FfdacDF0",
        "l2_standard_erc20_gateway": "0xE2b4795039517653c5Ae8C2A9BFdd783b48f447A",
        "l2_custom_erc20_gateway": "0x64CCBE37c9A82D85A1F2E74649b7A42923067988",
        "l2_erc721_gateway": "0x7bC08E1c04fb41d75F1410363F0c5746Eae80571",
        "l2_erc1155_gateway": "0x62597Cc19703aF10B58feF87B0d5D29eFE263bcc",
        "l2_weth_gateway": "0x7003E7B7186f0E6601203b99F7B8DECBfA391cf9",
        **_L2_PREDEPLOYS,
        **_SHARED,
    },
    "sepolia": {
        "scroll_chain": "0x2D567EcE699Eabe5afCd141eDB7A4f2D0D6ce8a0",
        "l1_message_queue": "0xF0B2293F5D834eAe920c6974D50d0D00D815d885",
        "l1_scroll_messenger": "0x50c7d3e7f7c656493D1D76aaa1a836CedfCBB16A",
        "l1_gateway_router": "0x13FBE0D0e5552b8c9c4AE9e2435F38f37355998a",
        "l1_eth_gateway": "0x8A54A2347Da2562917304141ab67324615e9866d",
        "l1_standard_erc20_gateway": "0x65D123d6389b900d954677c26327bfc1C3e88A13",
        "l1_custom_erc20_gateway": "0x31C994F2017E71b82fd4D8118F140c81215bbb37",
        "l1_erc721_gateway": "0xEF27f368a5aF9Ae7D03b0F9C27c025a9f18523dc",
        "l1_erc1155_gateway": "0xa27f1F2502836613B7C3B898F9350A03398EA55d",
        "l1_weth_gateway": "0x3dA0BF44814cfC678376b3311838272158211695",
        "l2_scroll_messenger": "0xBa50f5340FB9F3Bd074bD638c9BE13eCB36E603d",
        "l2_gateway_router": "0x9aD3c5617eCAa556d6E166787A97081907171230",
        "l2_eth_gateway": "0x91e8ADDFe1358aCa5314c644312d38237fC1101C",
        "l2_standard_erc20_gateway": "0xaDcA915971A336EA2f5b567e662F5bd74F4e887e",
        "l2_custom_erc20_gateway": "0x058dec71E53079F9ED053F3a0bBca877F6f3eAcf",
        "l2_erc721_gateway": "0xDd8FA4329fBB4b559721d41F1cFF0B537A4E9Aa4",
        "l2_erc1155_gateway": "0x102dF6D48002B0A1f4a4F23460380869cAABe463",
        "l2_weth_gateway": "0xB6c2C4B42eceD72C0C8B0cDB646D87e7A64E9fc6",
        **_L2_PREDEPLOYS,
        **_SHARED,
    },
}

L1_GAS_PRICE_ORACLE_ADDRESS = _L2_PREDEPLOYS["l1_gas_price_oracle"]
MULTICALL3_ADDRESS = _SHARED["multicall3"]
ENTRY_POINT_ADDRESS = _SHARED["entry_point"]
ENTRY_POINT_VERSION = "0.6.0"

ERC20_ABI = [
    "function name() view returns (string)",
    "function symbol() view returns (string)",
    "function decimals() view returns (uint8)",
    "function totalSupply() view returns (uint256)",
    "function balanceOf(address owner) view returns (uint256)",
    "function allowance(address owner, address spender) view returns (uint256)",
    "function transfer(address to, uint256 amount) returns (bool)",
    "function approve(address spender, uint256 amount) returns (bool)",
    "function transferFrom(address from, address to, uint256 amount) returns (bool)",
    "event Transfer(address indexed from, address indexed to, uint256 value)",
    "event Approval(address indexed owner, address indexed spender, uint256 value)",
]

ERC721_ABI = [
    "function name() view returns (string)",
    "function symbol() view returns (string)",
    "function totalSupply() view returns (uint256)",
    "function tokenURI(uint256 tokenId) view returns (string)",
    "function balanceOf(address owner) view returns (uint256)",
    "function ownerOf(uint256 tokenId) view returns (address)",
    "function safeTransferFrom(address from, address to, uint256 tokenId)",
    "function transferFrom(address from, address to, uint256 tokenId)",
    "function approve(address to, uint256 tokenId)",
    "function setApprovalForAll(address operator, bool approved)",
    "function getApproved(uint256 tokenId) view returns (address)",
    "function isApprovedForAll(address owner, address operator) view returns (bool)",
    "event Transfer(address indexed from, address indexed to, uint256 indexed tokenId)",
    "event Approval(address indexed owner, address indexed approved, uint256 indexed tokenId)",
    "event ApprovalForAll(address indexed owner, address indexed operator, bool approved)",
]

ERC1155_ABI = [
    "function uri(uint256 id) view returns (string)",
    "function balanceOf(address account, uint256 id) view returns (uint256)",
    "function balanceOfBatch(address[] accounts, uint256[] ids) view returns (uint256[])",
    "function setApprovalForAll(address operator, bool approved)",
    "function isApprovedForAll(address account, address operator) view returns (bool)",
    "function safeTransferFrom(address from, address to, uint256 id, uint256 amount, bytes data)",
    "event TransferSingle(address indexed operator, address indexed from, address indexed to, uint256 id, uint256 value)",
    "event ApprovalForAll(address indexed account, address indexed operator, bool approved)",
    "event URI(string value, uint256 indexed id)",
]

L1_SCROLL_MESSENGER_ABI = [
    "function sendMessage(address target, uint256 value, bytes message, uint256 gasLimit, address refundAddress) payable",
    "function xDomainMessageSender() view returns (address)",
    "event SentMessage(address indexed sender, address indexed target, uint256 value, uint256 messageNonce, uint256 gasLimit, bytes message)",
    "event RelayedMessage(bytes32 indexed messageHash)",
]

L2_SCROLL_MESSENGER_ABI = [
    "function sendMessage(address target, uint256 value, bytes message, uint256 gasLimit) payable",
    "function relayMessage(address from, address to, uint256 value, uint256 nonce, bytes message)",
    "function xDomainMessageSender() view returns (address)",
    "event SentMessage(address indexed sender, address indexed target, uint256 value, uint256 messageNonce, uint256 gasLimit, bytes message)",
    "event RelayedMessage(bytes32 indexed messageHash)",
]

L1_GATEWAY_ROUTER_ABI = [
    "function depositETH(uint256 amount, uint256 gasLimit) payable",
    "function depositERC20(address token, uint256 amount, uint256 gasLimit) payable",
    "function getL2ERC20Address(address l1Token) view returns (address)",
    "event DepositETH(address indexed from, address indexed to, uint256 amount, bytes data)",
]

L2_GATEWAY_ROUTER_ABI = [
    "function withdrawETH(uint256 amount, uint256 gasLimit) payable",
    "function withdrawERC20(address token, uint256 amount, uint256 gasLimit) payable",
    "function getL1ERC20Address(address l2Token) view returns (address)",
    "event WithdrawETH(address indexed from, address indexed to, uint256 amount, bytes data)",
    "event FinalizeDepositETH(address indexed from, address indexed to, uint256 amount, bytes data)",
]

L1_GAS_PRICE_ORACLE_ABI = [
    "function l1BaseFee() view returns (uint256)",
    "function overhead() view returns (uint256)",
    "function scalar() view returns (uint256)",
    "function getL1Fee(bytes data) view returns (uint256)",
    "function getL1GasUsed(bytes data) view returns (uint256)",
]

SCROLL_CHAIN_ABI = [
    "function lastFinalizedBatchIndex() view returns (uint256)",
    "function committedBatches(uint256 batchIndex) view returns (bytes32)",
    "function finalizedStateRoots(uint256 batchIndex) view returns (bytes32)",
    "function isBatchFinalized(uint256 batchIndex) view returns (bool)",
    "function withdrawRoots(uint256 batchIndex) view returns (bytes32)",
    "event CommitBatch(uint256 indexed batchIndex, bytes32 indexed batchHash)",
    "event FinalizeBatch(uint256 indexed batchIndex, bytes32 indexed batchHash, bytes32 stateRoot, bytes32 withdrawRoot)",
]

MULTICALL3_ABI = [
    "function aggregate3(tuple(address target, bool allowFailure, bytes callData)[] calls) payable returns (tuple(bool success, bytes returnData)[] returnData)",
    "function getBlockNumber() view returns (uint256 blockNumber)",
    "function getEthBalance(address addr) view returns (uint256 balance)",
]

ENTRY_POINT_ABI = [
    "function balanceOf(address account) view returns (uint256)",
    "function getNonce(address sender, uint192 key) view returns (uint256 nonce)",
    "function depositTo(address account) payable",
    "function getDepositInfo(address account) view returns (tuple(uint112 deposit, bool staked, uint112 stake, uint32 unstakeDelaySec, uint48 withdrawTime) info)",
]

CANVAS_PROFILE_ABI = [
    "function getProfile(address user) view returns (tuple(string username, string avatar, string bio, uint256 createdAt))",
    "function hasProfile(address user) view returns (bool)",
]

CANVAS_BADGE_ABI = [
    "function balanceOf(address owner) view returns (uint256)",
    "function tokenOfOwnerByIndex(address owner, uint256 index) view returns (uint256)",
    "function tokenURI(uint256 tokenId) view returns (string)",
    "function getBadgeInfo(uint256 tokenId) view returns (tuple(string name, string description, string imageUrl, uint256 mintedAt))",
]

EVENT_SIGNATURES = {
    "Transfer": "Transfer(address,address,uint256)",
    "Approval": "Approval(address,address,uint256)",
    "TransferSingle": "TransferSingle(address,address,address,uint256,uint256)",
    "DepositETH": "DepositETH(address,address,uint256,bytes)",
    "FinalizeDepositETH": "FinalizeDepositETH(address,address,uint256,bytes)",
    "WithdrawETH": "WithdrawETH(address,address,uint256,bytes)",
    "SentMessage": "SentMessage(address,address,uint256,uint256,uint256,bytes)",
    "RelayedMessage": "RelayedMessage(bytes32)",
    "CommitBatch": "CommitBatch(uint256,bytes32)",
    "FinalizeBatch": "FinalizeBatch(uint256,bytes32,bytes32,bytes32)",
}


def get_contract_addresses(network: str) -> dict[str, str]:
    key = str(network or "").strip().lower()
    if key not in CONTRACT_ADDRESSES:
        raise ValueError(f"No contract addresses for network: {network}")
    return dict(CONTRACT_ADDRESSES[key])


def get_contract_address(network: str, name: str) -> str:
    addresses = get_contract_addresses(network)
    if name not in addresses:
        raise ValueError(f"Unknown contract: {name}")
    return addresses[name]
