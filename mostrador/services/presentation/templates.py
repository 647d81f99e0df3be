"""Presentation instructions appended to the specialist prompts.

Each mode tells the model how much of an already-shown product or order to
repeat. The text is part of the system prompt, never shown to customers.
"""

import enum


class ProductPresentationMode(str, enum.Enum):
    FULL_CARD = "FULL_CARD"
    SIZE_ONLY = "SIZE_ONLY"
    COMPACT = "COMPACT"
    TEXT_ONLY = "TEXT_ONLY"


class OrderPresentationMode(str, enum.Enum):
    FULL_ORDER = "FULL_ORDER"
    TRACKING_ONLY = "TRACKING_ONLY"
    STATUS_ONLY = "STATUS_ONLY"
    PAYMENT_ONLY = "PAYMENT_ONLY"


FULL_CARD_INSTRUCTIONS = """**PRESENTATION MODE: FULL_CARD**

Show complete product cards with all details.

Format each product as:
![{product name}]({image url})
**{PRODUCT NAME IN CAPS}**
Precio: {price with $ and thousands separator} | Disponible
Descripción: {brief description}

---

Rules:
- Always include the image if available
- Show price with $ and thousands separator (e.g., $55.000)
- NEVER reveal exact stock quantities, only availability
- Show at most 3 products"""

SIZE_ONLY_INSTRUCTIONS = """**PRESENTATION MODE: SIZE_ONLY**

The customer is asking about size availability for a product that was already shown.

DO NOT show the full product card again. DO NOT show images.

Response format:
El {product name} está disponible en talle {requested size}.
Talles disponibles: {comma-separated list of available sizes}

If the size is NOT available:
El {product name} no está disponible en talle {requested size}.
Talles disponibles: {comma-separated list of available sizes}

Rules:
- Include the product name for reference
- Give a direct yes/no answer for the requested size
- Do NOT show price, image or description"""

COMPACT_INSTRUCTIONS = """**PRESENTATION MODE: COMPACT**

The customer is comparing products that were recently shown.

Call get_nuvemshop_product with each product ID listed under "Products Being Discussed" to get current data, then answer in compact form, one line per product:

**{PRODUCT NAME IN CAPS}**: Precio {price with $} - {the difference being asked about}

Rules:
- Do NOT show images or full descriptions
- Focus on the comparison the customer asked for"""

TEXT_ONLY_INSTRUCTIONS = """**PRESENTATION MODE: TEXT_ONLY**

The customer is asking about a specific attribute of a product that was recently shown.

DO NOT show product cards. DO NOT show images. Answer directly in one or two sentences.

Examples:
- "El TINI viene en negro?" → "Sí, el TINI también está disponible en negro."
- "De qué material es el ZIRI?" → "El ZIRI está hecho de denim con 2% de elastano."

Rules:
- Reference the product by name
- Only give the information being asked for"""

FULL_ORDER_INSTRUCTIONS = """**PRESENTATION MODE: FULL_ORDER**

Show the complete order details.

Format:
**Pedido #{order number}**
Estado: {status}
Fecha: {date}

Productos:
- {quantity}x {product name} - ${price}

Total: ${total}
Envío: {shipping status}
{if tracking: Seguimiento: {tracking number} ({carrier})}

Rules:
- Always show the order number prominently
- Format prices with $ and thousands separator
- Show at most one order in full detail"""

TRACKING_ONLY_INSTRUCTIONS = """**PRESENTATION MODE: TRACKING_ONLY**

The customer is asking about tracking for an order that was recently discussed.

DO NOT repeat items or prices.

Response format:
Tu pedido #{order number} está {shipping status}.
{if tracking: Podés seguirlo con el código {tracking number} ({carrier})}"""

STATUS_ONLY_INSTRUCTIONS = """**PRESENTATION MODE: STATUS_ONLY**

The customer is asking about the status of an order that was recently discussed.

DO NOT repeat order details. Keep it to one line:
Tu pedido #{order number}: {status}"""

PAYMENT_ONLY_INSTRUCTIONS = """**PRESENTATION MODE: PAYMENT_ONLY**

The customer is asking about the payment of an order that was recently discussed.

Response format:
Pedido #{order number} - Estado de pago: {payment status}
{if payment method: Método: {payment method}}
{if last transaction: Última transacción: {date} - {status}}

Rules:
- Focus only on payment information
- Do NOT repeat items or shipping details"""

PRODUCT_TEMPLATES: dict[ProductPresentationMode, str] = {
    ProductPresentationMode.FULL_CARD: FULL_CARD_INSTRUCTIONS,
    ProductPresentationMode.SIZE_ONLY: SIZE_ONLY_INSTRUCTIONS,
    ProductPresentationMode.COMPACT: COMPACT_INSTRUCTIONS,
    ProductPresentationMode.TEXT_ONLY: TEXT_ONLY_INSTRUCTIONS,
}

ORDER_TEMPLATES: dict[OrderPresentationMode, str] = {
    OrderPresentationMode.FULL_ORDER: FULL_ORDER_INSTRUCTIONS,
    OrderPresentationMode.TRACKING_ONLY: TRACKING_ONLY_INSTRUCTIONS,
    OrderPresentationMode.STATUS_ONLY: STATUS_ONLY_INSTRUCTIONS,
    OrderPresentationMode.PAYMENT_ONLY: PAYMENT_ONLY_INSTRUCTIONS,
}
