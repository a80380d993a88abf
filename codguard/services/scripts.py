"""Localized IVR scripts rendered as TwiML."""
from typing import Any, Dict

from twilio.twiml.voice_response import VoiceResponse

from ..domain.states import CallIntent, ScriptType
from ..rules.address import DEFAULT_VOICE_LANGUAGE

VOICES = {"es-ES": "Polly.Lucia", "it-IT": "Polly.Bianca"}

GATHER_TIMEOUT = {ScriptType.SHORT: 5, ScriptType.LONG: 7}

PHRASES: Dict[str, Dict[str, str]] = {
    "es-ES": {
        "greeting": "Hola, llamamos de {store} para confirmar su pedido número {number}.",
        "item_one": "un artículo",
        "item_many": "{n} artículos",
        "summary_short": "{items} por {amount} euros, entrega contra reembolso.",
        "summary_long": "Tiene {items} por {amount} euros, entrega contra reembolso.",
        "products": "Los productos son: {products}.",
        "address": "¿Puede confirmar su dirección de entrega? {address}.",
        "prompt_short": "Para confirmar, diga SÍ o presione uno. Para cancelar, diga NO o presione dos.",
        "prompt_long": ("¿Es correcto? Para confirmar todo, diga SÍ o presione uno. "
                        "Si hay algún problema, diga NO o presione dos."),
        "no_input_short": "No hemos recibido respuesta. Volveremos a intentar más tarde. Gracias.",
        "no_input_long": "No hemos recibido respuesta. Un agente le contactará pronto. Gracias.",
        "reply_confirmed": "Perfecto. Su pedido está confirmado. Recibirá la entrega pronto. Gracias.",
        "reply_cancelled": "De acuerdo. Su pedido ha sido cancelado. Gracias por avisar.",
        "reply_unclear": "No hemos entendido su respuesta. Un agente le contactará pronto. Gracias.",
        "not_found": "Error: pedido no encontrado.",
    },
    "it-IT": {
        "greeting": "Buongiorno, chiamiamo da {store} per confermare il suo ordine numero {number}.",
        "item_one": "un articolo",
        "item_many": "{n} articoli",
        "summary_short": "{items} per {amount} euro, consegna in contrassegno.",
        "summary_long": "Ha {items} per {amount} euro, consegna in contrassegno.",
        "products": "I prodotti sono: {products}.",
        "address": "Può confermare il suo indirizzo di consegna? {address}.",
        "prompt_short": "Per confermare, dica SÌ o prema uno. Per annullare, dica NO o prema due.",
        "prompt_long": ("È corretto? Per confermare, dica SÌ o prema uno. "
                        "Per segnalare un problema, dica NO o prema due."),
        "no_input_short": "Non abbiamo ricevuto risposta. Riproveremo più tardi. Grazie.",
        "no_input_long": "Non abbiamo ricevuto risposta. Un agente la contatterà a breve. Grazie.",
        "reply_confirmed": "Perfetto. Il suo ordine è confermato. Riceverà la consegna a breve. Grazie.",
        "reply_cancelled": "Va bene. Il suo ordine è stato annullato. Grazie per aver avvisato.",
        "reply_unclear": "Non abbiamo compreso la sua risposta. Un agente la contatterà a breve. Grazie.",
        "not_found": "Errore: ordine non trovato.",
    },
}

def _lang(language: str) -> str:
    return language if language in PHRASES else DEFAULT_VOICE_LANGUAGE

def format_amount(amount: float) -> str:
    return ("%.2f" % float(amount or 0)).rstrip("0").rstrip(".")

def item_text(total_items: int, language: str) -> str:
    p = PHRASES[_lang(language)]
    return p["item_one"] if total_items == 1 else p["item_many"].format(n=total_items)

def build_call_script(order: Dict[str, Any], script_type: str, language: str, action_url: str) -> str:
    """
    ``order`` carries store_name, order_number, total_items, total_amount,
    products (comma-joined) and address. Short scripts summarise and ask;
    long scripts also read back the products and the delivery address.
    """
    lang = _lang(language)
    st = ScriptType(script_type)
    p = PHRASES[lang]
    voice = VOICES[lang]
    resp = VoiceResponse()

    def say(target, text):
        target.say(text, voice=voice, language=lang)

    say(resp, p["greeting"].format(store=order["store_name"], number=order["order_number"]))
    resp.pause(length=1)

    items = item_text(order["total_items"], lang)
    summary = p["summary_short"] if st is ScriptType.SHORT else p["summary_long"]
    say(resp, summary.format(items=items, amount=format_amount(order["total_amount"])))
    resp.pause(length=1)

    if st is ScriptType.LONG:
        say(resp, p["products"].format(products=order["products"]))
        resp.pause(length=1)
        say(resp, p["address"].format(address=order["address"]))
        resp.pause(length=1)

    gather = resp.gather(
        input="speech dtmf",
        timeout=GATHER_TIMEOUT[st],
        num_digits=1,
        speech_timeout="auto",
        language=lang,
        action=action_url,
        method="POST",
    )
    say(gather, p["prompt_short"] if st is ScriptType.SHORT else p["prompt_long"])

    say(resp, p["no_input_short"] if st is ScriptType.SHORT else p["no_input_long"])
    return str(resp)

REPLY_KEYS = {
    CallIntent.CONFIRMED: "reply_confirmed",
    CallIntent.CANCELLED: "reply_cancelled",
    CallIntent.UNCLEAR: "reply_unclear",
}

def build_reply(intent: CallIntent, language: str) -> str:
    lang = _lang(language)
    resp = VoiceResponse()
    resp.say(PHRASES[lang][REPLY_KEYS[intent]], voice=VOICES[lang], language=lang)
    resp.hangup()
    return str(resp)

def build_not_found(language: str = DEFAULT_VOICE_LANGUAGE) -> str:
    lang = _lang(language)
    resp = VoiceResponse()
    resp.say(PHRASES[lang]["not_found"], voice=VOICES[lang], language=lang)
    resp.hangup()
    return str(resp)
