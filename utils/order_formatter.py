from typing import Dict, List, Optional

from .constants import AddressLabels, APIConfig, DeliveryDefaults, OrderStatus, PaymentMethods
from .helpers import cart_item_count, cart_subtotal, format_money


def group_menu_by_category(items: List, default: str = DeliveryDefaults.DEFAULT_CATEGORY) -> Dict[str, List]:
    """Group menu items by category, keeping first-seen category order"""
    groups: Dict[str, List] = {}
    for item in items:
        groups.setdefault(item.category or default, []).append(item)
    return groups


class OrderFormatter:
    """Utilities for formatting menus, carts and vouchers"""

    SUPPORT_FOOTER = "¿Dudas con tu pedido? Escríbenos o llámanos al {support_phone}.\nGracias por elegir Musuq Delivery 🛵"
    MORE_ITEMS = "... y {count} plato(s) más\n"
    # Room kept for prompts appended after the cart text
    CART_PROMPT_RESERVE = 200

    @staticmethod
    def format_invalid_selection(text: str, max_option: int) -> str:
        """Bounds error shared by every numbered selection"""
        return f"❌ Opción no válida: '{text}'. Responde con un número del 1 al {max_option}."

    @staticmethod
    def format_restaurant_list(restaurants: List, customer_name: Optional[str] = None) -> str:
        """Format open restaurants for selection"""
        greeting = f"¡Hola {customer_name}! 👋" if customer_name else "¡Hola! 👋"
        formatted = f"{greeting} Bienvenido a *Musuq Delivery* 🛵\n\n"
        formatted += "🍽️ Restaurantes abiertos ahora:\n\n"
        for i, restaurant in enumerate(restaurants, 1):
            formatted += f"{i}. *{restaurant.name}*\n"
            if restaurant.description:
                formatted += f"   {restaurant.description}\n"
            if restaurant.hours:
                formatted += f"   🕒 {restaurant.hours}\n"
        formatted += "\nResponde con el número del restaurante."
        return formatted

    @staticmethod
    def format_no_restaurants() -> str:
        return (
            "😔 Lo sentimos, en este momento no hay restaurantes abiertos.\n"
            "Vuelve a escribirnos más tarde."
        )

    @staticmethod
    def format_menu(restaurant, menu_items: List) -> str:
        """Format the menu grouped by category with one continuous numbering"""
        formatted = f"📋 Menú de *{restaurant.name}*\n"
        number = 1
        for category, items in group_menu_by_category(menu_items).items():
            formatted += f"\n*{category}*\n"
            for item in items:
                formatted += f"{number}. {item.name} - {format_money(item.price)}\n"
                if item.description:
                    formatted += f"   _{item.description}_\n"
                number += 1

        formatted += (
            "\n➕ Para agregar escribe: número [cantidad] [notas]\n"
            "   Ejemplo: 1 2 sin cebolla\n"
            "🛒 VER para ver tu carrito, VACIAR para vaciarlo\n"
            "✅ LISTO cuando termines"
        )
        return formatted

    @staticmethod
    def format_empty_menu(restaurant) -> str:
        return f"😔 {restaurant.name} no tiene platos disponibles ahora. Elige otro restaurante."

    @staticmethod
    def format_cart_lines(cart: List, max_length: Optional[int] = None) -> str:
        """Numbered cart lines with quantity x price = line total and notes

        With max_length, trailing lines are replaced by a '... y N platos más' line
        so the block never exceeds max_length characters.
        """
        blocks = []
        for i, line in enumerate(cart, 1):
            block = f"{i}. {line.name}\n"
            block += (
                f"   {line.quantity} x {format_money(line.unit_price)}"
                f" = {format_money(line.line_total)}\n"
            )
            if line.notes:
                block += f"   📝 {line.notes}\n"
            blocks.append(block)

        formatted = "".join(blocks)
        if max_length is None or len(formatted) <= max_length:
            return formatted

        formatted = ""
        for shown, block in enumerate(blocks):
            more = OrderFormatter.MORE_ITEMS.format(count=len(blocks) - shown)
            if len(formatted) + len(block) + len(more) > max_length:
                return formatted + more
            formatted += block
        return formatted

    @staticmethod
    def format_cart(cart: List, restaurant=None) -> str:
        """Format the current cart"""
        if not cart:
            return "🛒 Tu carrito está vacío. Escribe el número de un plato para agregarlo."

        formatted = "🛒 *Tu carrito*"
        if restaurant:
            formatted += f" - {restaurant.name}"
        formatted += "\n\n"
        total = f"\n💰 Total: {format_money(cart_subtotal(cart))}"
        budget = APIConfig.MAX_MESSAGE_LENGTH - OrderFormatter.CART_PROMPT_RESERVE - len(formatted) - len(total)
        return formatted + OrderFormatter.format_cart_lines(cart, budget) + total

    @staticmethod
    def format_item_added(line, cart: List) -> str:
        formatted = f"✅ Agregado: {line.quantity} x {line.name}"
        if line.notes:
            formatted += f" ({line.notes})"
        formatted += (
            f"\n🛒 {cart_item_count(cart)} producto(s) - Subtotal: {format_money(cart_subtotal(cart))}\n\n"
            "Agrega otro plato o escribe LISTO para continuar."
        )
        return formatted

    @staticmethod
    def format_item_usage(max_option: int) -> str:
        return (
            f"❌ No entendí. Escribe: número [cantidad] [notas], con un número del 1 al {max_option}.\n"
            "Ejemplo: 1 2 sin cebolla\n"
            "Comandos: VER, VACIAR, LISTO"
        )

    @staticmethod
    def format_cart_confirmation(cart: List, restaurant=None) -> str:
        """Text version of the confirm/modify prompt"""
        formatted = OrderFormatter.format_cart(cart, restaurant)
        formatted += "\n\n¿Confirmas tu pedido?\n1. ✅ Confirmar\n2. ✏️ Modificar"
        return formatted

    @staticmethod
    def format_saved_addresses(addresses: List) -> str:
        formatted = "📍 ¿A dónde enviamos tu pedido?\n\n"
        for i, address in enumerate(addresses, 1):
            marker = " ⭐" if address.is_default else ""
            formatted += f"{i}. *{address.label}*{marker}\n   {address.address}\n"
            if address.reference:
                formatted += f"   Ref: {address.reference}\n"
        formatted += "\nResponde con el número o escribe NUEVA para otra dirección."
        return formatted

    @staticmethod
    def format_new_address_prompt(first_time: bool = True) -> str:
        intro = "📍 Necesitamos tu dirección de entrega." if first_time else "📍 Ingresa la nueva dirección."
        return (
            f"{intro}\n\n"
            "Comparte tu ubicación 📎 o escribe la dirección completa\n"
            "(calle, número, distrito)."
        )

    @staticmethod
    def format_address_too_short() -> str:
        return (
            f"❌ La dirección es muy corta (mínimo {DeliveryDefaults.MIN_ADDRESS_LENGTH} caracteres).\n"
            "Escribe la dirección completa o comparte tu ubicación."
        )

    @staticmethod
    def format_reference_prompt(address) -> str:
        return (
            f"📍 Dirección: {address.text}\n\n"
            "¿Alguna referencia para el repartidor? (ej. puerta verde, 2do piso)\n"
            "Escribe OMITIR si no hay."
        )

    @staticmethod
    def format_delivery_estimate(estimate) -> str:
        formatted = f"🛵 Delivery: {format_money(estimate.fee)}"
        if estimate.distance_km:
            formatted += f" ({estimate.distance_km} km)"
        formatted += f"\n⏱️ Tiempo estimado: {estimate.eta_minutes} min"
        return formatted

    @staticmethod
    def format_save_address_offer(estimate) -> str:
        formatted = OrderFormatter.format_delivery_estimate(estimate)
        formatted += "\n\n💾 ¿Quieres guardar esta dirección?\n"
        for i, label in enumerate(AddressLabels.SAVE_OPTIONS, 1):
            formatted += f"{i}. {label}\n"
        formatted += f"{AddressLabels.DECLINE_OPTION}. No guardar"
        return formatted

    @staticmethod
    def format_payment_menu(estimate=None, intro: Optional[str] = None) -> str:
        formatted = f"{intro}\n\n" if intro else ""
        if estimate is not None:
            formatted += OrderFormatter.format_delivery_estimate(estimate) + "\n\n"
        formatted += "💳 ¿Cómo vas a pagar?\n"
        for i, method in enumerate(PaymentMethods.ORDERED, 1):
            formatted += f"{i}. {PaymentMethods.LABELS[method]}\n"
        formatted += "\nResponde con el número."
        return formatted

    @staticmethod
    def format_voucher(order, restaurant, support_phone: str) -> str:
        """Final order confirmation; only the item list is shortened for very large orders"""
        header = "🎉 *¡Pedido confirmado!*\n\n"
        header += f"🧾 Pedido: *{order.order_number}*\n"
        header += f"🍽️ {restaurant.name}\n"
        if order.created_at:
            header += f"📅 {order.created_at.strftime('%d/%m/%Y %H:%M')}\n"
        header += "\n"

        summary = f"\nSubtotal: {format_money(order.subtotal)}\n"
        summary += f"Delivery: {format_money(order.delivery_fee)}"
        if order.distance_km:
            summary += f" ({order.distance_km} km)"
        summary += f"\n*Total: {format_money(order.total)}*\n\n"
        summary += f"📍 {order.address}\n"
        if order.reference:
            summary += f"   Ref: {order.reference}\n"
        summary += f"💳 Pago: {PaymentMethods.LABELS.get(order.payment_method, order.payment_method)}\n"
        summary += f"⏱️ Llega en aprox. {order.eta_minutes} min\n\n"
        summary += "Escribe ESTADO para consultar tu pedido.\n"
        summary += OrderFormatter.SUPPORT_FOOTER.format(support_phone=support_phone)

        budget = APIConfig.MAX_MESSAGE_LENGTH - len(header) - len(summary)
        return header + OrderFormatter.format_cart_lines(order.lines, budget) + summary

    @staticmethod
    def format_order_status(order) -> str:
        formatted = f"📦 Pedido *{order.order_number}*\n\n"
        formatted += f"Estado: {OrderStatus.LABELS.get(order.status, order.status)}\n\n"
        formatted += f"⏱️ Tiempo estimado de entrega: {order.eta_minutes} min"
        return formatted

    @staticmethod
    def format_active_order_reminder(order) -> str:
        number = order.order_number if order else ''
        return (
            f"Tu pedido {number} ya está en camino de ser preparado 🍳\n"
            "Escribe ESTADO para ver su estado o REINICIAR para hacer un nuevo pedido."
        )

    @staticmethod
    def format_help() -> str:
        return (
            "ℹ️ *Ayuda Musuq Delivery*\n\n"
            "• Responde con números para elegir opciones\n"
            "• Para agregar platos: número [cantidad] [notas]\n"
            "• VER: ver tu carrito\n"
            "• VACIAR: vaciar el carrito\n"
            "• LISTO: terminar de agregar platos\n"
            "• ESTADO: estado de tu pedido\n"
            "• REINICIAR: empezar de nuevo"
        )
