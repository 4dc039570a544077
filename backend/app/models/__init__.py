# Import all models here
from app.models.user import User
from app.models.reminder import UserReminder
from app.models.push_subscription import PushSubscription
