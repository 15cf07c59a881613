from flask_login import LoginManager
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_pymongo import PyMongo
from flask_socketio import SocketIO

mongo = PyMongo()
bcrypt = Bcrypt()
login_manager = LoginManager()
cors = CORS()
socketio = SocketIO()
