from decimal import Decimal
import secrets

from django.db import models


# --- Choice constants ---

class AccountType(models.TextChoices):
    CUSTOMER = 'customer', 'Customer'
    RESTAURANT = 'restaurant', 'Restaurant'
    DELIVERY = 'delivery', 'Delivery Partner'


class Platform(models.TextChoices):
    WEB = 'web', 'Web'
    MOBILE = 'mobile', 'Mobile'


class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PREPARING = 'preparing', 'Preparing'
    READY = 'ready', 'Ready'
    ACCEPTED = 'accepted', 'Accepted'
    REACHED_PICKUP = 'reached_pickup', 'Reached Pickup'
    ORDER_CONFIRMED = 'order_confirmed', 'Order Confirmed'
    PICKED_UP = 'picked_up', 'Picked Up'
    REACHED_DROP = 'reached_drop', 'Reached Drop'
    OUT_FOR_DELIVERY = 'out_for_delivery', 'Out For Delivery'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'


class DeliveryStatus(models.TextChoices):
    """deliveryState.status as seen by the delivery partner's client."""
    NONE = '', 'Unassigned'
    ASSIGNED = 'assigned', 'Assigned'
    ACCEPTED = 'accepted', 'Accepted'
    REACHED_PICKUP = 'reached_pickup', 'Reached Pickup'
    ORDER_CONFIRMED = 'order_confirmed', 'Order Confirmed'
    REACHED_DROP = 'reached_drop', 'Reached Drop'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'


class DeliveryPhase(models.TextChoices):
    """deliveryState.currentPhase."""
    NONE = '', 'Unassigned'
    EN_ROUTE_TO_PICKUP = 'en_route_to_pickup', 'En Route To Pickup'
    AT_PICKUP = 'at_pickup', 'At Pickup'
    EN_ROUTE_TO_DELIVERY = 'en_route_to_delivery', 'En Route To Delivery'
    AT_DELIVERY = 'at_delivery', 'At Delivery'
    COMPLETED = 'completed', 'Completed'


class PaymentMethod(models.TextChoices):
    CASH = 'cash', 'Cash'
    RAZORPAY = 'razorpay', 'Razorpay'
    WALLET = 'wallet', 'Wallet'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    FAILED = 'failed', 'Failed'
    REFUNDED = 'refunded', 'Refunded'


class NotificationTarget(models.TextChoices):
    CUSTOMER = 'Customer', 'Customer'
    RESTAURANT = 'Restaurant', 'Restaurant'
    DELIVERY_MAN = 'Delivery Man', 'Delivery Man'


# --- Accounts ---

class Zone(models.Model):
    """Service zone. boundary is a closed ring of [lng, lat] points."""
    name = models.CharField(max_length=100, unique=True)
    boundary = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dispatch_zone'
        ordering = ['name']

    def __str__(self):
        return self.name


class Customer(models.Model):
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, unique=True)
    email = models.EmailField(blank=True)
    current_lat = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True
    )
    current_lng = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dispatch_customer'
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.name} ({self.phone})'


class Restaurant(models.Model):
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    latitude = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True,
        help_text='Pickup point for delivery'
    )
    longitude = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True,
        help_text='Pickup point for delivery'
    )
    is_open = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dispatch_restaurant'
        ordering = ['name']

    def __str__(self):
        return self.name


class DeliveryPartner(models.Model):
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, unique=True)
    is_available = models.BooleanField(default=True)
    last_lat = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True
    )
    last_lng = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True
    )
    last_updated = models.DateTimeField(null=True, blank=True)
    zones = models.ManyToManyField(Zone, related_name='delivery_partners', blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dispatch_delivery_partner'
        ordering = ['name']

    def __str__(self):
        return f'{self.name} ({self.phone})'


ACCOUNT_MODELS = {
    AccountType.CUSTOMER: Customer,
    AccountType.RESTAURANT: Restaurant,
    AccountType.DELIVERY: DeliveryPartner,
}


class AccountToken(models.Model):
    """Bearer key for a customer, restaurant or delivery partner session."""
    account_type = models.CharField(max_length=20, choices=AccountType.choices)
    account_id = models.PositiveBigIntegerField()
    key = models.CharField(max_length=64, unique=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dispatch_account_token'
        ordering = ['-created_at']

    def __str__(self):
        return f'Token for {self.account_type}:{self.account_id}'

    @classmethod
    def issue(cls, account_type, account_id):
        return cls.objects.create(
            account_type=account_type,
            account_id=account_id,
            key=secrets.token_hex(32),
        )

    def get_account(self):
        model = ACCOUNT_MODELS[self.account_type]
        return model.objects.filter(pk=self.account_id).first()


class PushToken(models.Model):
    """
    One device token of an account. The web and mobile partitions are the two
    token lists of an account; a token appears at most once per account.
    """
    account_type = models.CharField(max_length=20, choices=AccountType.choices)
    account_id = models.PositiveBigIntegerField()
    token = models.CharField(max_length=512)
    platform = models.CharField(
        max_length=10, choices=Platform.choices, default=Platform.WEB
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dispatch_push_token'
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['account_type', 'account_id', 'token'],
                name='unique_account_push_token',
            ),
        ]
        indexes = [
            models.Index(fields=['account_type', 'account_id']),
        ]

    def __str__(self):
        return f'{self.platform} token for {self.account_type}:{self.account_id}'


# --- Orders ---

class Order(models.Model):
    order_id = models.CharField(max_length=40, unique=True, db_index=True)
    customer = models.ForeignKey(
        Customer, on_delete=models.PROTECT, related_name='orders',
        null=True, blank=True
    )
    restaurant = models.ForeignKey(
        Restaurant, on_delete=models.PROTECT, related_name='orders'
    )
    delivery_partner = models.ForeignKey(
        DeliveryPartner, on_delete=models.SET_NULL, related_name='orders',
        null=True, blank=True
    )
    status = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING
    )
    accepted_by_admin = models.BooleanField(default=False)

    # deliveryState
    delivery_status = models.CharField(
        max_length=20, choices=DeliveryStatus.choices, blank=True, default=''
    )
    delivery_phase = models.CharField(
        max_length=30, choices=DeliveryPhase.choices, blank=True, default=''
    )
    assigned_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    reached_pickup_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    reached_drop_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    accept_lat = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True,
        help_text='Delivery partner location when the order was accepted'
    )
    accept_lng = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True,
        help_text='Delivery partner location when the order was accepted'
    )
    pickup_distance_km = models.DecimalField(
        max_digits=8, decimal_places=2, null=True, blank=True
    )
    pickup_eta_minutes = models.PositiveIntegerField(null=True, blank=True)
    bill_image = models.CharField(
        max_length=500, blank=True,
        help_text='Proof-of-purchase image URL captured at pickup'
    )
    rating = models.PositiveSmallIntegerField(null=True, blank=True)
    review = models.TextField(blank=True)
    cancel_reason = models.TextField(blank=True)

    # pricing
    subtotal = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    delivery_fee = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    tax = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    total = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )

    # drop address
    address_label = models.CharField(max_length=50, blank=True)
    address_street = models.CharField(max_length=255, blank=True)
    address_city = models.CharField(max_length=100, blank=True)
    address_lat = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True,
        help_text='Customer drop location latitude'
    )
    address_lng = models.DecimalField(
        max_digits=10, decimal_places=7, null=True, blank=True,
        help_text='Customer drop location longitude'
    )

    payment_method = models.CharField(
        max_length=20, choices=PaymentMethod.choices, blank=True
    )
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )
    note = models.TextField(blank=True)
    send_cutlery = models.BooleanField(default=False)
    estimated_delivery_time = models.PositiveIntegerField(
        default=30, help_text='Minutes'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dispatch_order'
        ordering = ['-created_at']

    def __str__(self):
        return f'Order {self.order_id} ({self.restaurant.name})'

    @property
    def delivery_state(self):
        """deliveryState record in the shape the clients consume."""
        return {
            'status': self.delivery_status,
            'currentPhase': self.delivery_phase,
            'acceptedAt': self.accepted_at,
            'reachedPickupAt': self.reached_pickup_at,
            'pickedUpAt': self.picked_up_at,
            'reachedDropAt': self.reached_drop_at,
            'deliveredAt': self.delivered_at,
            'billImage': self.bill_image,
            'rating': self.rating,
        }


class OrderItem(models.Model):
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name='items'
    )
    name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'dispatch_order_item'
        ordering = ['order', 'id']

    def __str__(self):
        return f'{self.quantity} x {self.name}'


class Payment(models.Model):
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name='payments'
    )
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )
    amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    transaction_reference = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dispatch_payment'
        ordering = ['-created_at']

    def __str__(self):
        return f'Payment #{self.id} ({self.method}) for {self.order_id}'


# --- Admin broadcast ---

class Notification(models.Model):
    title = models.CharField(max_length=255)
    description = models.TextField()
    image = models.ImageField(upload_to='notifications/', blank=True, null=True)
    image_url = models.CharField(
        max_length=500, blank=True,
        help_text='Externally hosted banner, used when no file was uploaded'
    )
    zone = models.CharField(max_length=100, default='All')
    target = models.CharField(max_length=20, choices=NotificationTarget.choices)
    is_active = models.BooleanField(default=True)
    token_count = models.PositiveIntegerField(default=0)
    sent_at = models.DateTimeField(auto_now_add=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dispatch_notification'
        ordering = ['-created_at']

    def __str__(self):
        return f'Notification #{self.id} ({self.target})'

    @property
    def image_link(self):
        if self.image:
            return self.image.url
        return self.image_url or None
