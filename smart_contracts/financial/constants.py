# Fixed point scale factors
PRECISION = 10**18  # 18 decimals for USD values, PUSD and health factors
PRECISION_DECIMALS = 18
MAX_UINT256 = 2**256 - 1  # Health factor of a position without debt

# Health factor thresholds
FULL_LIQUIDATION_MIN_HEALTH_FACTOR = 2 * PRECISION  # 200%
PARTIAL_LIQUIDATION_MIN_HEALTH_FACTOR = 15 * PRECISION // 10  # 150%
CLOSE_FACTOR = 135 * PRECISION // 100  # below 135% the whole debt can be repaid

# Liquidation constants
LIQUIDATION_BONUS = 5  # 5% of the seized collateral
LIQUIDATION_FRACTION = 50  # share of the debt repayable above the close factor
LIQUIDATION_PRECISION = 100

# Flash operation constants
MAX_FLASH_FEE_RATE = 10**16  # 1% in parts per 1e18

# Oracle constants
STALENESS_TIMEOUT = 2 * 60 * 60  # 2 hours
