from kivy.config import Config

# Window settings must be applied before the window is created
Config.set('graphics', 'resizable', '1')
Config.set('graphics', 'width', '1024')
Config.set('graphics', 'height', '480')

import os

from kivy.app import App
from kivy.uix.floatlayout import FloatLayout
from kivy.uix.boxlayout import BoxLayout
from kivy.uix.gridlayout import GridLayout
from kivy.uix.scrollview import ScrollView
from kivy.uix.label import Label
from kivy.uix.popup import Popup
from kivy.uix.modalview import ModalView
from kivy.uix.button import Button
from kivy.uix.slider import Slider
from kivy.uix.textinput import TextInput
from kivy.uix.widget import Widget
from kivy.properties import (
    BooleanProperty, ListProperty, ObjectProperty, OptionProperty, StringProperty,
)
from kivy.clock import Clock
from kivy.graphics import Color, Ellipse, Line, Rectangle, RoundedRectangle
from kivy.core.window import Window
from kivy.logger import Logger

from bt_transport import HAS_ANDROID, create_transport
from directions import Direction
from inputs import HoldBehavior, InputTracker, accepts_code
from rc_controller import ConnectionState, Controller, speed_percent
from settings_manager import SETTINGS_FILE, SettingsManager

if HAS_ANDROID:
    from jnius import autoclass

Window.clearcolor = (1, 1, 1, 1)

BLINK_INTERVAL = 0.35

CONNECT_HELP = (
    "1. Power on your ESP32-based RC Car.\n"
    "2. Pair your RC car via Bluetooth in your phone's settings.\n"
    "3. Tap 'Connect' below.\n"
    "4. Select your RC car from the list.\n"
    "5. Wait for 'Connected' status at the top.\n\n"
    "Buttons will work only after you are connected."
)


def set_landscape():
    try:
        PythonActivity = autoclass('org.kivy.android.PythonActivity')
        ActivityInfo = autoclass('android.content.pm.ActivityInfo')

        current_activity = PythonActivity.mActivity
        current_activity.setRequestedOrientation(ActivityInfo.SCREEN_ORIENTATION_LANDSCAPE)
        Logger.info("App: orientation set to landscape")
    except Exception as e:
        Logger.warning(f"App: orientation error: {e}")


class DirectionButton(HoldBehavior, Widget):
    """Hold-to-drive button drawn on the canvas."""
    text = StringProperty('')
    shape = OptionProperty('circle', options=['circle', 'rect'])
    fill_color = ListProperty([1, 1, 1, 1])
    highlighted = BooleanProperty(False)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.label = Label(text=self.text, bold=True, font_size='18sp', color=(0, 0, 0, 1))
        self.add_widget(self.label)
        self.bind(
            pos=self._update_canvas, size=self._update_canvas, held=self._update_canvas,
            highlighted=self._update_canvas, fill_color=self._update_canvas,
            text=self.label.setter('text'),
        )
        self._update_canvas()

    def _update_canvas(self, *args):
        self.canvas.before.clear()
        with self.canvas.before:
            if self.highlighted:
                Color(0, 0, 0, 1)
            elif self.held:
                Color(0.85, 0.85, 0.85, 1)
            else:
                Color(*self.fill_color)

            if self.shape == 'circle':
                d = min(self.width, self.height)
                Ellipse(pos=(self.center_x - d / 2, self.center_y - d / 2), size=(d, d))
                Color(0, 0, 0, 1)
                Line(circle=(self.center_x, self.center_y, d / 2), width=2)
            else:
                RoundedRectangle(pos=self.pos, size=self.size, radius=[18])
                Color(0, 0, 0, 1)
                Line(rounded_rectangle=(self.x, self.y, self.width, self.height, 18), width=2)

        self.label.pos = self.pos
        self.label.size = self.size
        self.label.color = (1, 1, 1, 1) if self.highlighted else (0, 0, 0, 1)


class CodeInput(TextInput):
    """Text field limited to a single character. Typing over a selected
    character replaces it."""

    def insert_text(self, substring, from_undo=False):
        if not accepts_code(self.text, self.selection_text):
            return
        if self.selection_text:
            self.delete_selection(from_undo=from_undo)
        return super().insert_text(substring[:1], from_undo=from_undo)


class ControllerRoot(FloatLayout):
    controller = ObjectProperty(None)
    blink_on = BooleanProperty(False)

    def __init__(self, controller, **kwargs):
        super().__init__(**kwargs)
        self.controller = controller
        self.buttons = []
        self.tracker = InputTracker(controller)

        # White background
        with self.canvas.before:
            Color(1, 1, 1, 1)
            self.bgrect = Rectangle(pos=self.pos, size=self.size)
        self.bind(pos=self._update_bg, size=self._update_bg)

        self._build_ui()

        controller.bind(
            state=self._on_state,
            status=self._update_status,
            indicated=self._update_highlight,
        )
        self.bind(blink_on=self._update_highlight)
        self._update_status()
        self._blink_event = Clock.schedule_interval(self._toggle_blink, BLINK_INTERVAL)

        Window.bind(on_key_down=self._on_key_down, on_key_up=self._on_key_up)
        Window.bind(focus=self._on_window_focus)

        Logger.info("App: controller view initialized")

    def _update_bg(self, *args):
        self.bgrect.pos = self.pos
        self.bgrect.size = self.size

    def _direction_button(self, direction, text, **kwargs):
        btn = DirectionButton(direction=direction, tracker=self.tracker, text=text, **kwargs)
        self.buttons.append(btn)
        return btn

    def _build_ui(self):
        layout = BoxLayout(orientation='vertical', padding=8, spacing=8)
        layout.add_widget(self._build_top_bar())

        body = BoxLayout(orientation='horizontal', spacing=8)

        # Forward / backward
        drive = BoxLayout(orientation='vertical', spacing=8, size_hint_x=2)
        drive.add_widget(self._direction_button(Direction.FORWARD, 'Forward'))
        drive.add_widget(self._direction_button(Direction.BACKWARD, 'Backward'))
        body.add_widget(drive)

        body.add_widget(self._build_dpad())

        # Left / right
        steer = BoxLayout(orientation='horizontal', spacing=18, padding=(8, 18), size_hint_x=3)
        steer.add_widget(self._direction_button(Direction.LEFT, 'Left', shape='rect'))
        steer.add_widget(self._direction_button(Direction.RIGHT, 'Right', shape='rect'))
        body.add_widget(steer)

        layout.add_widget(body)
        self.add_widget(layout)

    def _build_top_bar(self):
        bar = BoxLayout(orientation='horizontal', size_hint_y=None, height=70, spacing=12, padding=(12, 8))

        bar.add_widget(self._direction_button(
            Direction.STOP, 'STOP', fill_color=[0.9, 0.3, 0.3, 1], size_hint_x=None, width=54
        ))
        bar.add_widget(Label(
            text='POLYAUTO', bold=True, font_size='22sp', color=(0, 0, 0, 1), size_hint_x=None, width=160
        ))

        self.status_label = Label(text='', bold=True, font_size='13sp', size_hint_x=None, width=220)
        bar.add_widget(self.status_label)

        self.last_cmd_label = Label(text='Last: -', color=(0.3, 0.3, 0.3, 1), size_hint_x=None, width=90)
        self.controller.bind(last_command=self._update_last_command)
        bar.add_widget(self.last_cmd_label)
        bar.add_widget(Widget())

        # Speed control
        bar.add_widget(Label(text='Speed', color=(0, 0, 0, 1), size_hint_x=None, width=60))
        self.speed_slider = Slider(min=0, max=1, value=self.controller.speed, size_hint_x=None, width=180)
        self.speed_label = Label(
            text=f'{speed_percent(self.controller.speed)}%', bold=True, color=(0, 0, 0, 1),
            size_hint_x=None, width=60
        )
        self.speed_slider.bind(value=self._on_speed_change)
        bar.add_widget(self.speed_slider)
        bar.add_widget(self.speed_label)

        settings_btn = Button(text='Settings', size_hint_x=None, width=110)
        settings_btn.bind(on_press=lambda inst: self.show_settings_menu())
        bar.add_widget(settings_btn)
        return bar

    def _build_dpad(self):
        pad = FloatLayout(size_hint_x=3)
        arrows = [
            (Direction.FORWARD, '^', 0.5, 0.85),
            (Direction.BACKWARD, 'v', 0.5, 0.15),
            (Direction.LEFT, '<', 0.15, 0.5),
            (Direction.RIGHT, '>', 0.85, 0.5),
            (Direction.FORWARD_LEFT, 'FL', 0.25, 0.75),
            (Direction.FORWARD_RIGHT, 'FR', 0.75, 0.75),
            (Direction.BACKWARD_LEFT, 'BL', 0.25, 0.25),
            (Direction.BACKWARD_RIGHT, 'BR', 0.75, 0.25),
        ]
        for direction, text, cx, cy in arrows:
            pad.add_widget(self._direction_button(
                direction, text, size_hint=(0.2, 0.2), pos_hint={'center_x': cx, 'center_y': cy}
            ))
        pad.add_widget(self._direction_button(
            Direction.STOP, 'S', fill_color=[0.9, 0.2, 0.2, 1],
            size_hint=(0.24, 0.24), pos_hint={'center_x': 0.5, 'center_y': 0.5}
        ))
        return pad

    # Controller observers
    def _toggle_blink(self, dt):
        self.blink_on = not self.blink_on

    def _update_highlight(self, *args):
        indicated = self.controller.indicated
        for btn in self.buttons:
            btn.highlighted = self.blink_on and btn.direction is indicated

    def _update_status(self, *args):
        self.status_label.text = self.controller.status
        connected = self.controller.state is ConnectionState.CONNECTED
        self.status_label.color = (0, 0.6, 0, 1) if connected else (0.9, 0, 0, 1)

    def _update_last_command(self, instance, value):
        self.last_cmd_label.text = f'Last: {value}'

    def _on_state(self, instance, state):
        self._update_status()
        if state is ConnectionState.CONNECTED:
            self.show_connection_message(f"Connected to {self.controller.device_name}!", "success")
        elif state is ConnectionState.FAILED:
            self.show_connection_message(
                f"{self.controller.status}!\nMake sure your RC car is powered on and Bluetooth is enabled.",
                "error"
            )

    def _on_speed_change(self, instance, value):
        self.speed_label.text = f'{speed_percent(value)}%'
        self.controller.set_speed(value)

    # Keyboard
    def _on_key_down(self, window, key, scancode, codepoint, modifiers):
        if self._popup_open():
            return False
        return self.tracker.key_down(key)

    def _on_key_up(self, window, key, scancode):
        return self.tracker.key_up(key)

    def _popup_open(self):
        # Typing into the settings fields must not drive the car
        return any(isinstance(child, ModalView) for child in Window.children)

    def _on_window_focus(self, window, focused):
        if not focused:
            self.release_all_inputs()

    def release_all_inputs(self):
        self.tracker.clear()

    # Bluetooth UI
    def start_connect(self):
        if not self.controller.connect(self.choose_device):
            Logger.info("App: connect request ignored")

    def choose_device(self, devices, on_selected):
        """Device picker handed to the controller. Reports None when closed
        without a choice."""
        chosen = []

        content = BoxLayout(orientation='vertical', spacing=10, padding=10)
        device_list = BoxLayout(orientation='vertical', size_hint_y=None, spacing=5)
        device_list.bind(minimum_height=device_list.setter('height'))
        scroll = ScrollView(size_hint=(1, 1))
        scroll.add_widget(device_list)
        content.add_widget(scroll)

        popup = Popup(title='Select RC Car', content=content, size_hint=(0.7, 0.8))

        def pick(device):
            chosen.append(device)
            popup.dismiss()

        for device in devices:
            btn = Button(
                text=f"{device.name}\n{device.address}",
                size_hint_y=None,
                height=70,
                halign='center',
                font_size='14sp'
            )
            btn.bind(on_press=lambda inst, dev=device: pick(dev))
            device_list.add_widget(btn)

        cancel_btn = Button(text='Cancel', size_hint_y=None, height=50, font_size='16sp')
        cancel_btn.bind(on_press=lambda x: popup.dismiss())
        content.add_widget(cancel_btn)

        popup.bind(on_dismiss=lambda inst: on_selected(chosen[0] if chosen else None))
        popup.open()

    def show_connection_message(self, message, msg_type):
        content = BoxLayout(orientation='vertical', spacing=15, padding=25)
        color = (0, 0.7, 0, 1) if msg_type == "success" else (1, 0, 0, 1)
        message_label = Label(
            text=message,
            halign='center',
            valign='middle',
            font_size='16sp',
            color=color
        )
        message_label.bind(size=message_label.setter('text_size'))
        content.add_widget(message_label)

        close_btn = Button(
            text='OK',
            size_hint_y=0.4,
            background_color=color,
            color=(1, 1, 1, 1),
            font_size='16sp'
        )
        popup = Popup(
            title='Connection Status',
            content=content,
            size_hint=(0.6, 0.45),
            auto_dismiss=False
        )
        close_btn.bind(on_press=popup.dismiss)
        content.add_widget(close_btn)
        popup.open()

    # Settings menu
    def show_settings_menu(self):
        content = BoxLayout(orientation='vertical', spacing=12, padding=12)

        help_label = Label(text=CONNECT_HELP, halign='left', valign='top', font_size='14sp', size_hint_y=0.35)
        help_label.bind(size=help_label.setter('text_size'))
        content.add_widget(help_label)

        connection_btns = BoxLayout(size_hint_y=0.12, spacing=10)
        connect_btn = Button(text='Connect', font_size='16sp')
        disconnect_btn = Button(text='Disconnect', font_size='16sp')
        connection_btns.add_widget(connect_btn)
        connection_btns.add_widget(disconnect_btn)
        content.add_widget(connection_btns)

        content.add_widget(Label(text='Command keys', size_hint_y=0.06, font_size='16sp'))
        codes = GridLayout(cols=6, spacing=6, size_hint_y=0.3)
        inputs = {}
        for direction in Direction:
            codes.add_widget(Label(text=direction.label, font_size='13sp'))
            code_input = CodeInput(
                text=self.controller.get_code(direction),
                multiline=False,
                halign='center',
                font_size='16sp'
            )

            def on_code_change(instance, value, direction=direction):
                if value and value != self.controller.get_code(direction):
                    self.controller.set_code(direction, value)

            code_input.bind(text=on_code_change)
            inputs[direction] = code_input
            codes.add_widget(code_input)
        content.add_widget(codes)

        btns = BoxLayout(size_hint_y=0.12, spacing=10)
        reset_btn = Button(text='Reset to Default', font_size='16sp')
        close_btn = Button(text='Close', font_size='16sp')
        btns.add_widget(reset_btn)
        btns.add_widget(close_btn)
        content.add_widget(btns)

        popup = Popup(title='Settings', content=content, size_hint=(0.9, 0.9))

        def on_connect(instance):
            popup.dismiss()
            self.start_connect()

        def on_reset(instance):
            self.controller.reset_codes()
            for direction, code_input in inputs.items():
                code_input.text = self.controller.get_code(direction)

        connect_btn.bind(on_press=on_connect)
        disconnect_btn.bind(on_press=lambda x: self.controller.disconnect())
        reset_btn.bind(on_press=on_reset)
        close_btn.bind(on_press=lambda x: popup.dismiss())
        popup.open()


# App class
class PolyautoApp(App):
    def build(self):
        self.title = "Polyauto RC Car"
        Logger.info("App: starting Polyauto RC Car controller")

        self.settings_manager = SettingsManager(os.path.join(self.user_data_dir, SETTINGS_FILE))
        transport = create_transport(
            self.settings_manager.get('transport'),
            self.settings_manager.get('baudrate'),
        )
        transport.request_permissions()

        self.controller = Controller(transport, self.settings_manager)
        self.controller.speed = self.settings_manager.get('speed')
        return ControllerRoot(self.controller)

    def on_start(self):
        if HAS_ANDROID:
            Window.fullscreen = 'auto'
            Clock.schedule_once(lambda dt: set_landscape(), 1)

    def on_pause(self):
        # Touches in flight never get their touch up while paused
        self.root.release_all_inputs()
        Logger.info("App: paused")
        return True

    def on_resume(self):
        if HAS_ANDROID:
            Window.fullscreen = 'auto'
        Logger.info("App: resumed")

    def on_stop(self):
        self.settings_manager.set('speed', self.controller.speed)
        self.controller.close()
        Logger.info("App: stopped, connection released")


def run():
    PolyautoApp().run()


if __name__ == '__main__':
    run()
