"""Order serialization shared by the customer, restaurant, delivery and admin views."""
from dispatch.delivery.phases import phase_flags


def _dt(v):
    return v.isoformat() if v else None


def order_to_dict(o, include_items=False):
    rest = getattr(o, 'restaurant', None)
    partner = o.delivery_partner if o.delivery_partner_id else None
    d = {
        'id': o.id,
        'order_id': o.order_id,
        'customer_id': o.customer_id,
        'customer_name': o.customer.name if o.customer_id else None,
        'customer_phone': o.customer.phone if o.customer_id else None,
        'restaurant_id': o.restaurant_id,
        'restaurant_name': rest.name if rest else None,
        'restaurant_address': rest.address or '' if rest else '',
        'restaurant_phone': rest.phone or '' if rest else '',
        'status': o.status,
        'accepted_by_admin': o.accepted_by_admin,
        'delivery_partner_id': o.delivery_partner_id,
        'delivery_partner_name': partner.name if partner else None,
        'delivery_partner_phone': partner.phone if partner else None,
        'delivery_state': {k: _dt(v) if k.endswith('At') else v for k, v in o.delivery_state.items()},
        'phase': phase_flags(o),
        'pickup_distance_km': float(o.pickup_distance_km) if o.pickup_distance_km is not None else None,
        'pickup_eta_minutes': o.pickup_eta_minutes,
        'address': {
            'label': o.address_label,
            'street': o.address_street,
            'city': o.address_city,
            'lat': float(o.address_lat) if o.address_lat is not None else None,
            'lng': float(o.address_lng) if o.address_lng is not None else None,
        },
        'subtotal': str(o.subtotal),
        'delivery_fee': str(o.delivery_fee),
        'tax': str(o.tax),
        'total': str(o.total),
        'payment_method': o.payment_method or '',
        'payment_status': o.payment_status,
        'note': o.note or '',
        'send_cutlery': o.send_cutlery,
        'cancel_reason': o.cancel_reason or '',
        'estimated_delivery_time': o.estimated_delivery_time,
        'created_at': _dt(o.created_at),
        'updated_at': _dt(o.updated_at),
    }
    if include_items:
        d['items'] = [
            {
                'id': i.id,
                'name': i.name,
                'quantity': i.quantity,
                'price': str(i.price),
                'total': str(i.price * i.quantity),
            }
            for i in o.items.all()
        ]
    return d
