BOOKING_CONFIRMED = 'booking_confirmed'
BOOKING_CANCELLED = 'booking_cancelled'
REFUND_PROCESSING = 'refund_processing'
REFUND_COMPLETED = 'refund_completed'

KINDS = (BOOKING_CONFIRMED, BOOKING_CANCELLED, REFUND_PROCESSING, REFUND_COMPLETED)

TITLES = {
    BOOKING_CONFIRMED: 'Booking Confirmed',
    BOOKING_CANCELLED: 'Booking Cancelled',
    REFUND_PROCESSING: 'Refund Processing',
    REFUND_COMPLETED: 'Refund Completed',
}


def summary(kind, data):
    """One-line text used for in-app notifications."""
    movie = data.get('movie_title') or 'Movie'
    if kind == BOOKING_CONFIRMED:
        return f"Your booking for {movie} on {data.get('show_date', '')} at {data.get('show_time', '')} is confirmed."
    if kind == BOOKING_CANCELLED:
        return f"Your booking for {movie} was cancelled. A refund of ${data.get('amount', '')} has been requested."
    if kind == REFUND_PROCESSING:
        return f"Your refund for {movie} is being processed."
    if kind == REFUND_COMPLETED:
        return f"Your refund of ${data.get('amount', '')} for {movie} has been completed."
    raise ValueError(f"Unknown notification kind: {kind}")


def compose(kind, data, cinema_name='CineBook'):
    name = data.get('user_name') or 'Valued Customer'
    movie = data.get('movie_title') or 'Movie'
    seats_list = ", ".join(data.get('seats') or [])
    amount = data.get('amount', '')

    if kind == BOOKING_CONFIRMED:
        subject = f'Booking Confirmed - {movie} | {cinema_name}'
        message = f"""
Dear {name},

Your booking has been confirmed!

BOOKING DETAILS
===============
Booking ID: #{data.get('booking_id', '')}
Movie: {movie}
Screen: {data.get('screen_name', '')}

Show Date: {data.get('show_date', '')}
Show Time: {data.get('show_time', '')}

Seats Booked: {seats_list}
Total Amount: ${amount}

Transaction ID: {data.get('transaction_id', '')}

IMPORTANT
=========
- Please arrive at least 15 minutes before the show
- Carry a valid ID proof along with this confirmation

Thank you for choosing {cinema_name}!

Best Regards,
{cinema_name} Team
    """
    elif kind == BOOKING_CANCELLED:
        subject = f'Booking Cancellation Confirmation - {cinema_name}'
        message = f"""
Dear {name},

Your booking has been successfully cancelled. A refund request has been initiated.

CANCELLED BOOKING DETAILS
=========================
Movie: {movie}
Date: {data.get('show_date', '')}
Time: {data.get('show_time', '')}
Seats: {seats_list}
Refund Amount: ${amount}
Refund Status: Pending

Your refund will be processed within 3-5 business days. You will receive
another email once the refund has been completed.

Best Regards,
{cinema_name} Team
    """
    elif kind == REFUND_PROCESSING:
        subject = f'Refund Processing - {cinema_name}'
        message = f"""
Dear {name},

Your refund is now being processed.

REFUND DETAILS
==============
Movie: {movie}
Original Date: {data.get('show_date', '')}
Refund Amount: ${amount}
Status: Processing

The refund will be credited to your original payment method within 1-2 business days.

Best Regards,
{cinema_name} Team
    """
    elif kind == REFUND_COMPLETED:
        subject = f'Refund Completed - {cinema_name}'
        message = f"""
Dear {name},

Your refund has been successfully processed and credited to your original payment method.

REFUND SUMMARY
==============
Movie: {movie}
Refund Amount: ${amount}
Status: Completed

The funds should appear in your account within 1-3 business days, depending on your bank.

Best Regards,
{cinema_name} Team
    """
    else:
        raise ValueError(f"Unknown notification kind: {kind}")

    return subject, message
