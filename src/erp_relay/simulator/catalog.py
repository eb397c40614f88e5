"""
Default commodity catalog for the simulated ERP

Ten food-manufacturing inputs with base prices, opening stock and steady
daily consumption. Opening stock is sized so most items start with 60-260
days of cover; the replenishment policy keeps them there.
"""

from erp_relay.simulator.models import Item

DEFAULT_ITEMS: tuple[Item, ...] = (
    Item(item_id="sugar", name="Sugar #11", unit="lb", base_price=0.45, daily_rate=180, initial_on_hand=12000),
    Item(item_id="wheat", name="Wheat", unit="bu", base_price=6.5, daily_rate=240, initial_on_hand=14000),
    Item(item_id="cocoa", name="Cocoa", unit="mt", base_price=4200, daily_rate=30, initial_on_hand=3000),
    Item(item_id="butter", name="Butter", unit="lb", base_price=2.8, daily_rate=40, initial_on_hand=2600),
    Item(item_id="milk", name="Class III Milk", unit="cwt", base_price=17.5, daily_rate=12, initial_on_hand=1200),
    Item(item_id="soybean_oil", name="Soybean Oil", unit="lb", base_price=0.6, daily_rate=20, initial_on_hand=5200),
    Item(item_id="oats", name="Oats", unit="bu", base_price=3.9, daily_rate=90, initial_on_hand=6000),
    Item(item_id="corn", name="Corn", unit="bu", base_price=4.8, daily_rate=140, initial_on_hand=10000),
    Item(item_id="coffee", name="Coffee", unit="lb", base_price=1.4, daily_rate=18, initial_on_hand=2600),
    Item(item_id="cotton", name="Cotton", unit="lb", base_price=0.8, daily_rate=14, initial_on_hand=3200),
)


def get_item(item_id: str, items: tuple[Item, ...] = DEFAULT_ITEMS) -> Item:
    for item in items:
        if item.item_id == item_id:
            return item
    raise KeyError(item_id)
