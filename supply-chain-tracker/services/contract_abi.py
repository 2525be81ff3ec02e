"""
ABI of the AgriculturalSupplyChain contract (the subset this backend uses).

getProductDetails returns
(id, productName, farmerName, farmLocation, harvestDate, status, currentOwner,
price, isForSale).
"""

from __future__ import annotations


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


def _event(name, inputs):
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": indexed} for n, t, indexed in inputs],
    }


_ID = [("_productId", "uint256")]

CONTRACT_ABI = [
    _fn(
        "harvestProduct",
        [
            ("_productName", "string"),
            ("_farmerName", "string"),
            ("_farmLocation", "string"),
            ("_harvestDate", "uint256"),
        ],
    ),
    _fn("updateStatus", [("_productId", "uint256"), ("_status", "uint8")]),
    _fn("putProductForSale", [("_productId", "uint256"), ("_price", "uint256")]),
    _fn("purchaseProduct", _ID, mutability="payable"),
    _fn("authorizeUser", [("_user", "address")]),
    _fn("authorizedUsers", [("", "address")], [("", "bool")], "view"),
    _fn("getProductCount", [], [("", "uint256")], "view"),
    _fn("getAllProductIds", [], [("", "uint256[]")], "view"),
    _fn(
        "getProductDetails",
        _ID,
        [
            ("id", "uint256"),
            ("productName", "string"),
            ("farmerName", "string"),
            ("farmLocation", "string"),
            ("harvestDate", "uint256"),
            ("status", "uint8"),
            ("currentOwner", "address"),
            ("price", "uint256"),
            ("isForSale", "bool"),
        ],
        "view",
    ),
    _fn("getProductName", _ID, [("", "string")], "view"),
    _fn("getProductFarmer", _ID, [("", "string")], "view"),
    _fn("getProductLocation", _ID, [("", "string")], "view"),
    _fn("getProductHarvestDate", _ID, [("", "uint256")], "view"),
    _fn("getProductStatus", _ID, [("", "uint8")], "view"),
    _fn("getProductOwner", _ID, [("", "address")], "view"),
    _fn("getProductPrice", _ID, [("", "uint256")], "view"),
    _fn("getProductForSaleStatus", _ID, [("", "bool")], "view"),
    _event(
        "ProductHarvested",
        [
            ("productId", "uint256", True),
            ("productName", "string", False),
            ("farmerName", "string", False),
            ("owner", "address", True),
        ],
    ),
    _event(
        "StatusUpdated",
        [
            ("productId", "uint256", True),
            ("newStatus", "uint8", False),
            ("updatedBy", "address", True),
        ],
    ),
    _event(
        "ProductForSale",
        [
            ("productId", "uint256", True),
            ("price", "uint256", False),
        ],
    ),
]

CONTRACT_EVENTS = ("ProductHarvested", "StatusUpdated", "ProductForSale")
