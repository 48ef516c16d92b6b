"""Constants and enumerations"""


# Conversation states
class ConversationStates:
    START = 'start'
    SELECTING_RESTAURANT = 'selecting_restaurant'
    ADDING_ITEMS = 'adding_items'
    CONFIRMING_CART = 'confirming_cart'
    MANAGING_ADDRESS = 'managing_address'
    SELECTING_SAVED_ADDRESS = 'selecting_saved_address'
    ENTERING_NEW_ADDRESS = 'entering_new_address'
    CONFIRMING_LOCATION_REFERENCE = 'confirming_location_reference'
    SELECTING_PAYMENT = 'selecting_payment'
    ORDER_ACTIVE = 'order_active'

    ALL = (
        START, SELECTING_RESTAURANT, ADDING_ITEMS, CONFIRMING_CART,
        MANAGING_ADDRESS, SELECTING_SAVED_ADDRESS, ENTERING_NEW_ADDRESS,
        CONFIRMING_LOCATION_REFERENCE, SELECTING_PAYMENT, ORDER_ACTIVE
    )


# Sub-states, each only valid together with its parent state
class SubStates:
    AWAITING_SAVE_CHOICE = 'awaiting_save_choice'

    PARENTS = {
        AWAITING_SAVE_CHOICE: ConversationStates.SELECTING_PAYMENT,
    }


# Payment methods, in display order
class PaymentMethods:
    CASH = 'cash'
    YAPE = 'yape'
    PLIN = 'plin'
    CARD = 'card'

    ORDERED = (CASH, YAPE, PLIN, CARD)

    LABELS = {
        CASH: 'Efectivo',
        YAPE: 'Yape',
        PLIN: 'Plin',
        CARD: 'Tarjeta (POS)',
    }


# Labels offered when saving a new address; the last option declines
class AddressLabels:
    HOME = 'Casa'
    WORK = 'Trabajo'
    OFFICE = 'Oficina'
    OTHER = 'Otra'

    SAVE_OPTIONS = (HOME, WORK, OFFICE)
    DECLINE_OPTION = len(SAVE_OPTIONS) + 1


# Order status values
class OrderStatus:
    PENDING = 'PENDING'
    PREPARING = 'PREPARING'
    ON_THE_WAY = 'ON_THE_WAY'
    DELIVERED = 'DELIVERED'
    CANCELLED = 'CANCELLED'

    LABELS = {
        PENDING: '✅ Recibido',
        PREPARING: '👨‍🍳 En preparación',
        ON_THE_WAY: '🛵 En camino',
        DELIVERED: '📦 Entregado',
        CANCELLED: '❌ Cancelado',
    }


# Recognised keywords (compared lower-cased, accents kept)
class Keywords:
    RESTART = ('reiniciar', 'reset', 'inicio', 'cancelar', 'restart')
    HELP = ('ayuda', 'help', '?')
    DONE = ('listo', 'done', 'fin', 'terminar', 'finalizar')
    VIEW_CART = ('ver', 'view', 'carrito', 'cart')
    CLEAR_CART = ('vaciar', 'clear', 'borrar')
    YES = ('1', 'si', 'sí', 'confirmar', 'yes', 'ok', 'dale')
    NO = ('2', 'no', 'modificar', 'agregar', 'cambiar')
    NEW_ADDRESS = ('nueva', 'otra', 'new', 'nuevo')
    SKIP = ('omitir', 'no', 'skip', 'ninguna', '-')
    STATUS = ('estado', 'status', 'pedido')


# Message types
class MessageTypes:
    TEXT = 'text'
    INTERACTIVE = 'interactive'
    INTERACTIVE_BUTTONS = 'interactive_buttons'
    LOCATION = 'location'
    BUTTON = 'button'


# Delivery defaults
class DeliveryDefaults:
    FALLBACK_FEE = 5.00
    FALLBACK_DISTANCE_KM = 0
    FALLBACK_ETA_MINUTES = 30
    MIN_ADDRESS_LENGTH = 10
    DEFAULT_CATEGORY = 'General'


# API Configuration
class APIConfig:
    WHATSAPP_API_VERSION = 'v18.0'
    WHATSAPP_BASE_URL = 'https://graph.facebook.com'
    MAX_MESSAGE_LENGTH = 4000
    MAX_QUICK_REPLY_BUTTONS = 3
    MAX_BUTTON_TITLE_LENGTH = 20
    CURRENCY = 'S/'


# Error messages
class ErrorMessages:
    SYSTEM_ERROR = "Lo sentimos, ocurrió un error. Por favor intenta de nuevo."
    SERVICE_BUSY = "Estamos procesando tu mensaje anterior. Intenta de nuevo en unos segundos."
    ORDER_FAILED = (
        "😔 No pudimos registrar tu pedido.\n"
        "Escribe cualquier mensaje para empezar de nuevo o contáctanos al {support_phone}."
    )
