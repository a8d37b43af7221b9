from .tenancy import Store, StoreConfig
from .lottery import LotteryGame, LotteryBox, LotteryPack
from .readings import LotteryReading, LotteryAnomaly
from .dayclose import LotteryDrawDay, LotteryDay, LotteryPosting, LotteryPostingLine
from .audit import LotteryAuditEvent

__all__ = [
    'Store', 'StoreConfig',
    'LotteryGame', 'LotteryBox', 'LotteryPack',
    'LotteryReading', 'LotteryAnomaly',
    'LotteryDrawDay', 'LotteryDay', 'LotteryPosting', 'LotteryPostingLine',
    'LotteryAuditEvent',
]
