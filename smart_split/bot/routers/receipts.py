from __future__ import annotations

from aiogram import Bot, F, Router
from aiogram.enums import ParseMode
from aiogram.fsm.context import FSMContext
from aiogram.types import Message

from smart_split.bot.routers.bills import start_payer_step
from smart_split.bot.text import esc
from smart_split.errors import ReceiptRecognitionError
from smart_split.services.receipts import ReceiptRecognizer
from smart_split.state.app import AppState

router = Router(name=__name__)


@router.message(F.photo)
async def receipt_photo(message: Message, bot: Bot, state: FSMContext, app: AppState, recognizer: ReceiptRecognizer) -> None:
    if not recognizer.available:
        await message.answer("Receipt reading is not enabled. Add the bill with /bill &lt;title&gt;.", parse_mode=ParseMode.HTML)
        return

    status = await message.answer("Reading the receipt…")
    buf = await bot.download(message.photo[-1])
    try:
        receipt = await recognizer.recognize(buf.read(), "image/jpeg")
    except ReceiptRecognitionError as e:
        await status.edit_text(f"{esc(str(e))}\nUse /bill &lt;title&gt; to add it by hand.", parse_mode=ParseMode.HTML)
        return

    await status.delete()
    await start_payer_step(
        message,
        state,
        app,
        initiator=message.from_user.id,
        title=receipt.title,
        amount=receipt.amount,
    )
