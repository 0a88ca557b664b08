"""
Configuraciones específicas para el servicio Grid.
"""
from datetime import timedelta
from decimal import Decimal

# USDC en Solana (moneda de cotización de todas las grillas)
USDC_MINT = 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v'
USDC_DECIMALS = 6

# Keeper de órdenes
ORDER_KEEPER_INTERVAL_SECONDS = 1
PENDING_ORDERS_BATCH_SIZE = 100
ORDER_CONFIRMATION_TIMEOUT = timedelta(minutes=2)

# Las liquidaciones aceptan hasta un 1% por debajo del último precio
EXIT_PRICE_DISCOUNT = Decimal('0.01')

# Ventanas de volumen para filtrar compras
FIVE_KLINE_WINDOW = 5

# Enlaces usados en las notificaciones
SOLSCAN_TX_URL = 'https://solscan.io/tx/{}'
GMGN_TOKEN_URL = 'https://gmgn.ai/sol/token/{}'

# Venues
OKX_BASE_URL = 'https://web3.okx.com'
OKX_SOLANA_CHAIN_INDEX = '501'
RELAY_BASE_URL = 'https://api.relay.link'
RELAY_SOLANA_CHAIN_ID = 792703809
QUICKNODE_GAS_TRACKER_URL = 'https://quicknode.com/_gas-tracker?slug=solana'
HTTP_TIMEOUT_SECONDS = 15.0
