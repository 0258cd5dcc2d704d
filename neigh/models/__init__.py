from .user import User
from .category import Category
from .task import Task
from .assignment import TaskAssignment, TaskAssignmentStatus
from .review import Review
from .invoice import Invoice, InvoiceItem
from .payment import Payment
from .chat import Conversation, ConversationParticipant, Message
from .cart import Cart
